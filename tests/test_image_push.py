import re
from datetime import datetime, timezone
from pathlib import Path

import pytest

from secgate.application.image_push import (
    PushSettings,
    additional_tags,
    approved_tag,
    run_image_push,
)
from secgate.core.exceptions import ConfigurationError, ToolExecutionError

from .fakes import FakeCosign, FakeDocker, FakeSyft

REGISTRY = "registry.example.com/group"
IMAGE = f"{REGISTRY}/shop:2.0"


@pytest.fixture
def settings():
    return PushSettings(image_name="shop", image_tag="2.0", registry=REGISTRY,
                        username="ci-bot", password="s3cret", pipeline_id="4711")


def _out(config) -> Path:
    return Path(config.project.results_dir) / "push"


def test_settings_from_env():
    settings = PushSettings.from_env({
        "IMAGE_NAME": "shop", "IMAGE_TAG": "2.0", "REGISTRY_URL": REGISTRY,
        "REGISTRY_USER": "ci-bot", "REGISTRY_PASSWORD": "s3cret",
        "SIGN_IMAGE": "true", "COSIGN_KEY": "cosign.key", "CI_PIPELINE_ID": "4711",
    })
    assert settings.local_image == "shop:2.0"
    assert settings.registry_image == IMAGE
    assert settings.sign is True
    assert settings.verify is False
    assert settings.cosign_key == "cosign.key"


def test_additional_tags_skip_the_pushed_tag(settings):
    when = datetime(2025, 3, 7, tzinfo=timezone.utc)
    assert additional_tags(settings, when) == ["latest", "security-approved-20250307", "build-4711"]
    settings.image_tag = "latest"
    assert additional_tags(settings, when) == ["security-approved-20250307", "build-4711"]
    assert approved_tag(IMAGE, when) == f"{REGISTRY}/shop:security-approved-20250307"


def test_push_pipeline(config, settings):
    docker = FakeDocker(local_images=[IMAGE, f"{REGISTRY}/shop:old", f"{REGISTRY}/shop:latest"])
    cosign, syft = FakeCosign(), FakeSyft()
    report = run_image_push(config, {}, docker=docker, cosign=cosign, syft=syft, settings=settings)

    assert report.passed
    [login] = docker.called("login")
    assert login == [REGISTRY, "-u", "ci-bot", "--password-stdin"]
    assert "s3cret" in docker.inputs
    assert ["image", "tag", "shop:2.0", IMAGE] in docker.calls
    pushed = [c[1] for c in docker.called("push")]
    assert pushed[0] == IMAGE
    assert f"{REGISTRY}/shop:latest" in pushed
    assert f"{REGISTRY}/shop:build-4711" in pushed
    assert any(re.fullmatch(rf"{re.escape(REGISTRY)}/shop:security-approved-\d{{8}}", p) for p in pushed)
    assert report.counts["digest"] == f"{REGISTRY}/shop@sha256:c0ffee"
    assert len(report.counts["additional_tags"]) == 3

    assert cosign.calls == []
    assert report.counts["sbom"] is True
    assert report.counts["removed_local_images"] == [f"{REGISTRY}/shop:old", f"{REGISTRY}/shop:latest"]
    assert docker.called("builder") == []

    out = _out(config)
    assert (out / "pushed-image-digest.txt").read_text() == f"{REGISTRY}/shop@sha256:c0ffee\n"
    assert "openssl" in (out / "sbom.json").read_text()
    push_report = (out / "push-report.md").read_text()
    assert f"**Image:** `{IMAGE}`" in push_report
    assert "**Image Signing:** false" in push_report


def test_signing_verification_and_attestation(config, settings):
    settings.sign = settings.verify = True
    settings.cosign_key = "cosign.key"
    cosign = FakeCosign()
    report = run_image_push(config, {}, docker=FakeDocker(), cosign=cosign, syft=FakeSyft(),
                            settings=settings)

    assert report.counts["signed"] is True
    assert cosign.called("sign") == [["sign", "--key", "cosign.key", IMAGE]]
    assert cosign.called("verify") == [["verify", IMAGE]]
    [attest] = cosign.called("attest")
    assert attest[-1] == IMAGE
    assert f"cosign verify {IMAGE}" in (_out(config) / "push-report.md").read_text()


def test_signing_failure_is_fatal(config, settings):
    settings.sign = True
    with pytest.raises(ToolExecutionError):
        run_image_push(config, {}, docker=FakeDocker(), cosign=FakeCosign(ok=False),
                       syft=FakeSyft(), settings=settings)


def test_missing_cosign_disables_signing(config, settings):
    settings.sign = True
    cosign = FakeCosign(installed=False)
    report = run_image_push(config, {}, docker=FakeDocker(), cosign=cosign,
                            syft=FakeSyft(installed=False), settings=settings)
    assert report.counts["signed"] is False
    assert report.counts["sbom"] is False
    assert cosign.calls == []


def test_failed_additional_tag_only_warns(config, settings):
    docker = FakeDocker(push_fails=[f"{REGISTRY}/shop:latest"])
    report = run_image_push(config, {}, docker=docker, cosign=FakeCosign(), syft=FakeSyft(),
                            settings=settings)
    assert f"{REGISTRY}/shop:latest" not in report.counts["additional_tags"]
    assert len(report.counts["additional_tags"]) == 2


def test_without_credentials_no_login(config, settings):
    settings.username = settings.password = ""
    settings.cleanup = False
    docker = FakeDocker(local_images=[f"{REGISTRY}/shop:old"])
    run_image_push(config, {}, docker=docker, cosign=FakeCosign(), syft=FakeSyft(), settings=settings)
    assert docker.called("login") == []
    assert docker.called("rmi") == []


@pytest.mark.parametrize("docker, error", [
    (FakeDocker(present=False), ToolExecutionError),
    (FakeDocker(daemon=False), ToolExecutionError),
    (FakeDocker(login_ok=False), ToolExecutionError),
    (FakeDocker(push_fails=[IMAGE]), ToolExecutionError),
])
def test_fatal_push_errors(config, settings, docker, error):
    with pytest.raises(error):
        run_image_push(config, {}, docker=docker, cosign=FakeCosign(), syft=FakeSyft(),
                       settings=settings)


def test_registry_is_required(config, settings):
    settings.registry = ""
    with pytest.raises(ConfigurationError):
        run_image_push(config, {}, docker=FakeDocker(), cosign=FakeCosign(), syft=FakeSyft(),
                       settings=settings)


def test_build_cache_prune(config, settings):
    settings.clean_build_cache = True
    docker = FakeDocker()
    run_image_push(config, {}, docker=docker, cosign=FakeCosign(), syft=FakeSyft(), settings=settings)
    assert docker.called("builder", "prune", "-f")
