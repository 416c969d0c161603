"""Report renderers and writers shared by every pipeline stage."""
from .gitlab import GITLAB_REPORT_VERSION, gitlab_report
from .html import render_html_report
from .sarif import findings_to_sarif, sarif_skeleton
from .writers import ensure_dir, read_env, read_json, write_env, write_json, write_text

__all__ = [
    "GITLAB_REPORT_VERSION",
    "ensure_dir",
    "findings_to_sarif",
    "gitlab_report",
    "read_env",
    "read_json",
    "render_html_report",
    "sarif_skeleton",
    "write_env",
    "write_json",
    "write_text",
]
