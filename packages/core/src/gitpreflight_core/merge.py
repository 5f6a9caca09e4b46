"""Consensus merging of per-model findings.

Findings from different models are considered equivalent when they share a
signature: path, line, normalized title and the first 80 characters of the
suggestion. Each group collapses into one Finding whose agreement records how
many distinct models reported it.

The merge is a pure function and its output does not depend on the order in
which models are listed or answered: inputs are put in canonical model order
before grouping, and the output is fully sorted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from gitpreflight_core.findings import Agreement, Finding, SEVERITY_ORDER, finding_sort_key

_SUGGESTION_PREFIX_CHARS = 80


@dataclass
class ModelFindings:
    model_name: str
    findings: list[Finding] = field(default_factory=list)


def normalize_title(title: str) -> str:
    return " ".join(title.split()).lower()


def signature(finding: Finding) -> tuple:
    suggestion = (finding.suggestion or "").strip()
    return (
        finding.path.strip(),
        finding.line,
        normalize_title(finding.title),
        suggestion[:_SUGGESTION_PREFIX_CHARS],
    )


def _max_severity(a: str, b: str) -> str:
    # Lower SEVERITY_ORDER means more severe.
    return a if SEVERITY_ORDER.get(a, 0) <= SEVERITY_ORDER.get(b, 0) else b


def _canonical_model_order(per_model: list[ModelFindings]) -> list[ModelFindings]:
    def key(m: ModelFindings) -> tuple:
        return (m.model_name, json.dumps([f.to_dict() for f in m.findings], sort_keys=True))

    return sorted(per_model, key=key)


def merge_findings(per_model: list[ModelFindings]) -> list[Finding]:
    """Merge per-model finding lists into one deterministic consensus list."""
    total_models = len(per_model)
    groups: dict[tuple, Finding] = {}
    votes: dict[tuple, set[str]] = {}

    for model in _canonical_model_order(per_model):
        for f in model.findings:
            key = signature(f)
            merged = groups.get(key)
            if merged is None:
                groups[key] = Finding(
                    path=f.path,
                    severity=f.severity,
                    title=f.title,
                    message=f.message,
                    line=f.line,
                    suggestion=f.suggestion or None,
                )
                votes[key] = {model.model_name}
                continue

            votes[key].add(model.model_name)
            merged.severity = _max_severity(merged.severity, f.severity)
            if len(f.message or "") > len(merged.message or ""):
                merged.message = f.message
            if not merged.suggestion and f.suggestion:
                merged.suggestion = f.suggestion

    for key, merged in groups.items():
        merged.agreement = Agreement(agreed=len(votes[key]), total=total_models)

    return sorted(
        groups.values(),
        key=lambda f: (f.path, *finding_sort_key(f), f.message, f.suggestion or ""),
    )
