"""Standalone HTML summary reports.

Every stage writes one page: a header with project metadata, a summary
block of labelled counts and optional bullet-list sections.
"""
from __future__ import annotations

from html import escape
from typing import Iterable, Mapping, Optional, Sequence, Tuple

STYLE = """
        body { font-family: Arial, sans-serif; margin: 20px; }
        .header { background: #f5f5f5; padding: 20px; border-radius: 5px; }
        .summary { margin: 20px 0; }
        .critical, .failed { color: #d63384; font-weight: bold; }
        .high { color: #fd7e14; font-weight: bold; }
        .medium { color: #ffc107; font-weight: bold; }
        .low, .passed { color: #198754; }
        .warning { color: #fd7e14; }
"""

SummaryRow = Tuple[str, object, str]


def render_html_report(
    title: str,
    heading: str,
    metadata: Mapping[str, object],
    summary: Sequence[SummaryRow],
    sections: Optional[Mapping[str, Iterable[str]]] = None,
    footer: str = "Generated by SecGate",
) -> str:
    """
    Render a report page.

    Parameters
    ----------
    title : str
        ``<title>`` text.
    heading : str
        Page ``<h1>``.
    metadata : Mapping
        Header key/value pairs (project, commit, scan date).
    summary : Sequence of (label, value, css_class)
        Counts shown in the summary block.
    sections : Mapping, optional
        Section heading -> bullet items.
    """
    lines = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        f"    <title>{escape(title)}</title>",
        f"    <style>{STYLE}    </style>",
        "</head>",
        "<body>",
        '    <div class="header">',
        f"        <h1>{escape(heading)}</h1>",
    ]
    for key, value in metadata.items():
        lines.append(f"        <p><strong>{escape(key)}:</strong> {escape(str(value))}</p>")
    lines += ["    </div>", '    <div class="summary">', "        <h2>Summary</h2>"]
    for label, value, css in summary:
        lines.append(
            f'        <p><span class="{escape(css)}">{escape(label)}:</span> {escape(str(value))}</p>'
        )
    lines.append("    </div>")
    for section, items in (sections or {}).items():
        lines += ["    <div>", f"        <h2>{escape(section)}</h2>", "        <ul>"]
        lines += [f"            <li>{escape(str(item))}</li>" for item in items]
        lines += ["        </ul>", "    </div>"]
    lines += [
        f"    <div><p><em>{escape(footer)}</em></p></div>",
        "</body>",
        "</html>",
        "",
    ]
    return "\n".join(lines)


__all__ = ["render_html_report"]
