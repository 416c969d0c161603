from __future__ import annotations

from pathlib import Path

import pytest

from secgate.config import Config

SNYK_TOKEN = "0123abcd-0123-abcd-0123-0123456789ab"


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def config(tmp_path: Path, project_root: Path) -> Config:
    cfg = Config()
    cfg.project.root = str(project_root)
    cfg.project.results_dir = str(tmp_path / "reports")
    cfg.logging.file_output = False
    cfg.tools.trivy_cache_dir = str(tmp_path / "trivy-cache")
    return cfg


@pytest.fixture
def ci_env():
    return {
        "CI_PROJECT_NAME": "secure-app",
        "CI_COMMIT_SHA": "abc123def456",
        "CI_ENVIRONMENT_SLUG": "staging",
        "CI_REGISTRY_IMAGE": "registry.example.com/group/secure-app",
        "IMAGE_TAG": "1.4.2",
        "SNYK_TOKEN": SNYK_TOKEN,
        "CHECKMARX_URL": "https://checkmarx.example.com",
        "CHECKMARX_USERNAME": "ci-bot",
        "CHECKMARX_PASSWORD": "s3cret",
    }


@pytest.fixture
def write(project_root: Path):
    """Write a file under the project root, creating parent directories."""

    def _write(relative: str, text: str = "") -> Path:
        path = project_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write
