from secgate.core.models import Finding
from secgate.infra.reports import (
    findings_to_sarif,
    gitlab_report,
    read_env,
    render_html_report,
    sarif_skeleton,
    write_env,
)


def _trivy_finding():
    return Finding(scanner="trivy", category="container_scanning", identifier="CVE-2024-0001",
                   title="zlib overflow", description="Heap overflow", severity="CRITICAL",
                   package="zlib", version="1.2", target="alpine 3.19",
                   references=["https://avd.aquasec.com/nvd/cve-2024-0001"])


def test_gitlab_container_entry():
    report = gitlab_report([_trivy_finding()], image="app:1.0")
    assert report["version"] == "14.0.0"
    [entry] = report["vulnerabilities"]
    assert entry["category"] == "container_scanning"
    assert entry["severity"] == "critical"
    assert entry["scanner"] == {"id": "trivy", "name": "Trivy"}
    assert entry["location"]["image"] == "app:1.0"
    assert entry["location"]["dependency"]["package"] == {"name": "zlib"}
    assert entry["identifiers"][0]["value"] == "CVE-2024-0001"


def test_gitlab_dependency_entry_links_cve_and_cwe():
    finding = Finding(scanner="snyk", category="license", identifier="snyk:lic:npm:gpl",
                      title="GPL-3.0 license", severity="high", file_path="package.json",
                      cves=["CVE-2020-1"], cwes=["CWE-79"])
    [entry] = gitlab_report([finding])["vulnerabilities"]
    assert entry["category"] == "dependency_scanning"
    assert entry["location"]["file"] == "package.json"
    assert entry["location"]["dependency"]["version"] == "unknown"
    urls = [i.get("url") for i in entry["identifiers"]]
    assert "https://cve.mitre.org/cgi-bin/cvename.cgi?name=CVE-2020-1" in urls
    assert "https://cwe.mitre.org/data/definitions/79.html" in urls


def test_sarif_rules_are_deduplicated():
    findings = [_trivy_finding(), _trivy_finding()]
    log = findings_to_sarif(findings, "Trivy", "0.50.1", "https://aquasecurity.github.io/trivy/")
    run = log["runs"][0]
    assert log["version"] == "2.1.0"
    assert len(run["tool"]["driver"]["rules"]) == 1
    assert len(run["results"]) == 2
    assert run["results"][0]["level"] == "error"
    assert run["results"][0]["message"]["text"] == "zlib overflow in zlib@1.2"


def test_sarif_skeleton_is_empty():
    log = sarif_skeleton("Trivy", "unknown", "https://aquasecurity.github.io/trivy/")
    assert log["runs"][0]["results"] == []


def test_html_report_escapes_values():
    html = render_html_report(
        title="Report <x>",
        heading="Heading",
        metadata={"Project": "a&b"},
        summary=[("Critical", 2, "critical")],
        sections={"Notes": ["<script>"]},
    )
    assert "<title>Report &lt;x&gt;</title>" in html
    assert "a&amp;b" in html
    assert "&lt;script&gt;" in html
    assert '<span class="critical">Critical:</span> 2' in html


def test_env_file_updates_keys_in_place(tmp_path):
    path = tmp_path / "out" / "results.env"
    write_env(path, {"SCANNED_IMAGE": "app:1", "TRIVY_HIGH_COUNT": 0})
    write_env(path, {"TRIVY_HIGH_COUNT": 4})
    assert read_env(path) == {"SCANNED_IMAGE": "app:1", "TRIVY_HIGH_COUNT": "4"}
    assert path.read_text(encoding="utf-8").count("TRIVY_HIGH_COUNT") == 1


def test_read_env_missing_file(tmp_path):
    assert read_env(tmp_path / "missing.env") == {}
