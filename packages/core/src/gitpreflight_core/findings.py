"""Review findings and results.

A Finding is the unit every reviewer (remote models, local agent, linters)
produces and every renderer consumes. ReviewResult.status is derived from the
findings except for UNCHECKED, which only the orchestrator sets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SEVERITIES = ("note", "minor", "major")
STATUSES = ("PASS", "FAIL", "UNCHECKED")

# Sort rank: most severe first.
SEVERITY_ORDER = {"major": 0, "minor": 1, "note": 2}


@dataclass
class Agreement:
    """How many of the consulted models reported an equivalent finding."""

    agreed: int = 0
    total: int = 0


@dataclass
class Finding:
    path: str
    severity: str  # "note" | "minor" | "major"
    title: str
    message: str
    line: int | None = None
    suggestion: str | None = None
    agreement: Agreement = field(default_factory=Agreement)

    @property
    def is_blocking(self) -> bool:
        return self.severity != "note"

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "path": self.path,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
        }
        if self.line is not None:
            data["line"] = self.line
        if self.suggestion:
            data["suggestion"] = self.suggestion
        data["agreement"] = {"agreed": self.agreement.agreed, "total": self.agreement.total}
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Finding:
        """Build a Finding from decoded JSON, raising ValueError on schema violations."""
        if not isinstance(data, dict):
            raise ValueError(f"finding must be an object, got {type(data).__name__}")

        path = data.get("path")
        if not isinstance(path, str) or not path.strip():
            raise ValueError("finding.path must be a non-empty string")

        severity = data.get("severity")
        if severity not in SEVERITIES:
            raise ValueError(f"finding.severity must be one of {', '.join(SEVERITIES)}; got {severity!r}")

        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValueError("finding.title must be a non-empty string")

        message = data.get("message", "")
        if not isinstance(message, str):
            raise ValueError("finding.message must be a string")

        line = data.get("line")
        # bool is an int subclass; reject it explicitly.
        if line is not None and (isinstance(line, bool) or not isinstance(line, int) or line < 1):
            raise ValueError(f"finding.line must be a positive integer; got {line!r}")

        suggestion = data.get("suggestion")
        if suggestion is not None and not isinstance(suggestion, str):
            raise ValueError("finding.suggestion must be a string")

        agreement = Agreement()
        raw_agreement = data.get("agreement")
        if isinstance(raw_agreement, dict):
            agreed = raw_agreement.get("agreed", 0)
            total = raw_agreement.get("total", 0)
            if isinstance(agreed, int) and isinstance(total, int):
                agreement = Agreement(agreed=agreed, total=total)

        return cls(
            path=path,
            severity=severity,
            title=title,
            message=message,
            line=line,
            suggestion=suggestion or None,
            agreement=agreement,
        )


def finding_sort_key(finding: Finding) -> tuple:
    """Order within one path: severity (major first), line (missing last), title."""
    has_line = isinstance(finding.line, int)
    return (
        SEVERITY_ORDER.get(finding.severity, len(SEVERITY_ORDER)),
        not has_line,
        finding.line if has_line else 0,
        str(finding.title),
    )


def sort_findings(findings: list[Finding]) -> list[Finding]:
    """Return findings ordered by path, then finding_sort_key."""
    return sorted(findings, key=lambda f: (f.path, *finding_sort_key(f)))


def count_severities(findings: list[Finding]) -> dict[str, int]:
    counts = {s: 0 for s in SEVERITIES}
    for f in findings:
        # Unknown severities are tallied as major, matching how they block.
        counts[f.severity if f.severity in counts else "major"] += 1
    return counts


def derive_status(findings: list[Finding]) -> str:
    return "FAIL" if any(f.is_blocking for f in findings) else "PASS"


@dataclass
class ReviewResult:
    status: str  # "PASS" | "FAIL" | "UNCHECKED"
    findings: list[Finding] = field(default_factory=list)

    @classmethod
    def from_findings(cls, findings: list[Finding]) -> ReviewResult:
        return cls(status=derive_status(findings), findings=list(findings))

    @classmethod
    def unchecked(cls, findings: list[Finding] | None = None) -> ReviewResult:
        return cls(status="UNCHECKED", findings=list(findings or []))

    @property
    def exit_code(self) -> int:
        return 1 if self.status == "FAIL" else 0
