import os

import pytest

from secgate.application.environment import (
    checkmarx_environment,
    policy_environment,
    require_env,
    snyk_environment,
    trivy_environment,
)
from secgate.config import Config, ConfigLoader
from secgate.core.exceptions import ConfigurationError, ValidationError


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("SECGATE_"):
            monkeypatch.delenv(key)


def test_defaults_validate():
    config = ConfigLoader().load_config(dotenv_path=None)
    assert config.gates.trivy_high == 3
    assert config.gates.snyk_high == 10
    assert config.gates.checkmarx_high == 5
    assert config.policy.engine == "builtin"
    assert config.database.enabled is False


def test_yaml_file_with_nested_key(tmp_path):
    path = tmp_path / "gates.yaml"
    path.write_text("secgate:\n  gates:\n    trivy_high: 0\n  policy:\n    min_replicas: 3\n",
                    encoding="utf-8")
    config = ConfigLoader().load_config(str(path), dotenv_path=None)
    assert config.gates.trivy_high == 0
    assert config.policy.min_replicas == 3


def test_toml_file(tmp_path):
    path = tmp_path / "secgate.toml"
    path.write_text('[checkmarx]\nurl = "https://cx.example.com"\npoll_interval = 5\n',
                    encoding="utf-8")
    config = ConfigLoader().load_config(str(path), dotenv_path=None)
    assert config.checkmarx.url == "https://cx.example.com"
    assert config.checkmarx.poll_interval == 5


def test_default_file_is_picked_up_from_working_directory(tmp_path):
    (tmp_path / "secgate.yaml").write_text("gates:\n  snyk_critical: 2\n", encoding="utf-8")
    assert ConfigLoader().load_config(dotenv_path=None).gates.snyk_critical == 2


def test_missing_or_unsupported_file(tmp_path):
    with pytest.raises(ConfigurationError):
        ConfigLoader().load_config(str(tmp_path / "nope.yaml"), dotenv_path=None)
    ini = tmp_path / "secgate.ini"
    ini.write_text("[gates]\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigLoader().load_config(str(ini), dotenv_path=None)


def test_unknown_option_is_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("gates:\n  trivy_medium: 4\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigLoader().load_config(str(path), dotenv_path=None)


def test_env_overrides_are_coerced(monkeypatch):
    monkeypatch.setenv("SECGATE_GATES__TRIVY_HIGH", "0")
    monkeypatch.setenv("SECGATE_DATABASE__ENABLED", "true")
    monkeypatch.setenv("SECGATE_POLICY__TRUSTED_REGISTRIES", "ghcr.io/acme, registry.example.com")
    monkeypatch.setenv("SECGATE_NOSUCH__THING", "ignored")
    config = ConfigLoader().load_config(dotenv_path=None)
    assert config.gates.trivy_high == 0
    assert config.database.enabled is True
    assert config.policy.trusted_registries == ["ghcr.io/acme", "registry.example.com"]


def test_env_override_with_wrong_type_fails(monkeypatch):
    monkeypatch.setenv("SECGATE_GATES__TRIVY_HIGH", "many")
    with pytest.raises(ConfigurationError):
        ConfigLoader().load_config(dotenv_path=None)


def test_dotenv_file_feeds_environment(tmp_path, monkeypatch):
    dotenv = tmp_path / ".env"
    dotenv.write_text("SECGATE_GATES__SNYK_HIGH=1\n", encoding="utf-8")
    monkeypatch.setenv("SECGATE_GATES__SNYK_HIGH", "7")
    # values already in the environment win over .env
    assert ConfigLoader().load_config(dotenv_path=str(dotenv)).gates.snyk_high == 7


def test_args_win_over_file(tmp_path):
    path = tmp_path / "secgate.yaml"
    path.write_text("logging:\n  level: DEBUG\n", encoding="utf-8")
    config = ConfigLoader().load_config(str(path), args={"log_level": "ERROR", "db_enabled": True,
                                                         "db_path": "x.db"}, dotenv_path=None)
    assert config.logging.level == "ERROR"
    assert config.database.enabled is True
    assert config.database.path == "x.db"


def test_validation_collects_errors(tmp_path):
    config = Config.from_dict({
        "gates": {"trivy_high": -1},
        "policy": {"engine": "kyverno", "packages": ["network"]},
        "project": {"root": str(tmp_path / "missing")},
    })
    with pytest.raises(ConfigurationError) as excinfo:
        config.validate()
    errors = excinfo.value.details["errors"]
    assert "gates.trivy_high must be >= 0, got -1" in errors
    assert "Invalid policy engine: kyverno" in errors
    assert "Unknown policy package: network" in errors
    assert any(e.startswith("Project root does not exist") for e in errors)


def test_require_env_reports_first_missing():
    with pytest.raises(ConfigurationError) as excinfo:
        require_env(["A", "B"], {"A": "1", "B": ""})
    assert excinfo.value.config_key == "B"


def test_stage_environments(ci_env):
    assert trivy_environment(ci_env)["IMAGE_TAG"] == "1.4.2"
    assert snyk_environment(ci_env)["SNYK_TOKEN"] == ci_env["SNYK_TOKEN"]
    assert checkmarx_environment(ci_env)["CHECKMARX_USERNAME"] == "ci-bot"
    assert policy_environment(ci_env)["CI_ENVIRONMENT_SLUG"] == "staging"


@pytest.mark.parametrize("tag", ["1.0 beta", "v1/2", "tag:latest"])
def test_bad_image_tag_is_rejected(ci_env, tag):
    with pytest.raises(ValidationError):
        trivy_environment({**ci_env, "IMAGE_TAG": tag})


def test_bad_snyk_token_is_rejected(ci_env):
    with pytest.raises(ValidationError):
        snyk_environment({**ci_env, "SNYK_TOKEN": "not-a-token"})
