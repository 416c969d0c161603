import json
from pathlib import Path
from unittest import mock

import pytest

from secgate.application.checkmarx_scan import build_client, run_checkmarx_scan
from secgate.application.environment import checkmarx_environment
from secgate.core.exceptions import ConfigurationError, RemoteServiceError
from secgate.infra.clients import CheckmarxClient
from secgate.infra.reports import read_env


@pytest.fixture
def client():
    cx = mock.create_autospec(CheckmarxClient, instance=True)
    cx.get_or_create_project.return_value = 12
    cx.start_scan.return_value = 900
    cx.wait_for_scan.return_value = "Finished"
    cx.results_statistics.return_value = {"highSeverity": 2, "mediumSeverity": 4, "lowSeverity": 1}
    cx.results.return_value = [
        {"id": 1, "queryName": "XSS", "severity": "High", "fileName": "app.js", "line": 3, "queryId": 7},
    ]
    return cx


def test_scan_flow_and_reports(config, ci_env, client, write):
    write("app.js", "alert(1)\n")
    config.checkmarx.team_id = 4
    report = run_checkmarx_scan(config, ci_env, client=client, sleep=lambda _: None)

    assert report.passed
    assert report.counts["high"] == 2
    assert report.counts["scan_id"] == 900
    client.authenticate.assert_called_once_with()
    client.get_or_create_project.assert_called_once_with("secure-app", team_id=4)
    client.upload_source.assert_called_once()
    assert Path(client.upload_source.call_args.args[1]).name == "source.zip"
    client.start_scan.assert_called_once_with(
        12, comment="Automated scan from CI pipeline - Commit: abc123def456", incremental=True,
    )
    assert client.wait_for_scan.call_args.kwargs["poll_interval"] == 30

    out = Path(config.project.results_dir) / "sast"
    env = read_env(out / "checkmarx-results.env")
    assert env == {
        "CHECKMARX_CRITICAL_COUNT": "0",
        "CHECKMARX_HIGH_COUNT": "2",
        "CHECKMARX_MEDIUM_COUNT": "4",
        "CHECKMARX_LOW_COUNT": "1",
        "CHECKMARX_INFO_COUNT": "0",
    }
    sast = json.loads((out / "checkmarx-gitlab-sast.json").read_text())
    assert sast["vulnerabilities"][0]["location"] == {"file": "app.js", "start_line": 3, "end_line": 3}


def test_gate_fails_above_high_threshold(config, ci_env, client):
    client.results_statistics.return_value = {"highSeverity": 6}
    report = run_checkmarx_scan(config, ci_env, client=client)
    assert not report.passed
    # the SAST stage writes no failure file
    assert not list((Path(config.project.results_dir) / "sast").glob("*failure*"))


def test_missing_detailed_results_still_gates(config, ci_env, client):
    client.results.return_value = None
    report = run_checkmarx_scan(config, ci_env, client=client)
    assert report.findings == []
    assert not (Path(config.project.results_dir) / "sast" / "checkmarx-detailed-results.json").exists()


def test_remote_errors_propagate(config, ci_env, client):
    client.wait_for_scan.side_effect = RemoteServiceError("checkmarx", "Scan 900 ended with status Failed")
    with pytest.raises(RemoteServiceError):
        run_checkmarx_scan(config, ci_env, client=client)


def test_missing_credentials(config, ci_env, client):
    env = dict(ci_env)
    del env["CHECKMARX_PASSWORD"]
    with pytest.raises(ConfigurationError):
        run_checkmarx_scan(config, env, client=client)
    client.authenticate.assert_not_called()


def test_build_client_prefers_configured_url(config, ci_env):
    assert build_client(config, ci_env).base_url == "https://checkmarx.example.com"
    config.checkmarx.url = "https://cx.internal/"
    client = build_client(config, ci_env)
    assert client.base_url == "https://cx.internal"
    assert client.username == "ci-bot"


def test_configured_url_replaces_the_url_variable(config, ci_env, client):
    env = {k: v for k, v in ci_env.items() if k != "CHECKMARX_URL"}
    with pytest.raises(ConfigurationError):
        run_checkmarx_scan(config, env, client=client)

    config.checkmarx.url = "https://cx.internal"
    assert run_checkmarx_scan(config, env, client=client).passed
    assert checkmarx_environment(env, url=config.checkmarx.url)["CHECKMARX_URL"] == "https://cx.internal"
