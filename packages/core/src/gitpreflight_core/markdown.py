"""Stable Markdown rendering of a ReviewResult.

The report is the artifact agents and hooks parse, so its layout is fixed:

    # GitPreflight Review

    Result: <PASS|FAIL|UNCHECKED>
    Counts: note=<n> minor=<n> major=<n>

    ## Findings
    ...

Counts are always tallied from the findings themselves. The Findings header is
always present; an empty list renders "(none)".
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from gitpreflight_core.findings import Finding, ReviewResult, count_severities, finding_sort_key

REPORT_TITLE = "# GitPreflight Review"

_RESULT_RE = re.compile(r"^Result:\s*(PASS|FAIL|UNCHECKED)\s*$", re.MULTILINE)
_COUNTS_RE = re.compile(r"^Counts:\s*note=(\d+)\s+minor=(\d+)\s+major=(\d+)\s*$", re.MULTILINE)


def fence_for(content: str, minimum: int = 3) -> str:
    """Return a backtick fence longer than any backtick run inside content."""
    longest = 0
    current = 0
    for ch in content:
        if ch == "`":
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return "`" * max(minimum, longest + 1)


def _render_finding(f: Finding) -> list[str]:
    out = ["", f"#### {f.title}", f"Path: {f.path}"]
    if isinstance(f.line, int):
        out.append(f"Line: {f.line}")
    out.append(f"Severity: {f.severity}")
    agreement = f.agreement
    agreed = getattr(agreement, "agreed", 0) or 0
    total = getattr(agreement, "total", 0) or 0
    out.append(f"Agreement: {agreed}/{total}")
    out.append("")
    out.append((f.message or "").rstrip())

    suggestion = f.suggestion or ""
    if suggestion.strip():
        fence = fence_for(suggestion)
        out.append("")
        out.append(f"{fence}suggestion")
        out.append(suggestion.rstrip())
        out.append(fence)
    return out


def format_review_markdown(result: ReviewResult) -> str:
    findings = list(result.findings)
    counts = count_severities(findings)

    out = [
        REPORT_TITLE,
        "",
        f"Result: {result.status}",
        f"Counts: note={counts['note']} minor={counts['minor']} major={counts['major']}",
        "",
        "## Findings",
    ]

    if not findings:
        out.extend(["", "(none)", ""])
        return "\n".join(out)

    by_path: dict[str, list[Finding]] = {}
    for f in findings:
        by_path.setdefault(f.path, []).append(f)

    for path in sorted(by_path):
        out.append("")
        out.append(f"### {path}")
        for f in sorted(by_path[path], key=finding_sort_key):
            out.extend(_render_finding(f))

    out.append("")
    return "\n".join(out)


@dataclass
class ReportSummary:
    status: str | None
    counts: dict[str, int] | None


def parse_summary(markdown: str) -> ReportSummary:
    """Read back the Result and Counts lines of a rendered report."""
    status_match = _RESULT_RE.search(markdown)
    counts_match = _COUNTS_RE.search(markdown)
    counts = None
    if counts_match:
        counts = {
            "note": int(counts_match.group(1)),
            "minor": int(counts_match.group(2)),
            "major": int(counts_match.group(3)),
        }
    return ReportSummary(status=status_match.group(1) if status_match else None, counts=counts)
