"""Deterministic merge of per-file findings into one report."""

import json
from dataclasses import dataclass, field
from typing import Iterable, Optional

from pluton.detectors.base import SEVERITY_ORDER, SEVERITY_RANK, Finding


@dataclass
class AnalysisReport:
    """Aggregated analysis results.

    Only ``counts_by_severity`` and ``findings`` are derived from the
    findings; everything else is run metadata and never affects ordering.
    """

    counts_by_severity: dict = field(default_factory=dict)
    findings: list = field(default_factory=list)
    target: str = ""
    files_analyzed: int = 0
    files_skipped: int = 0
    detectors_run: int = 0
    cancelled: bool = False
    overflow_checks: bool = False
    anchor_version: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.findings)

    def count(self, severity: str) -> int:
        return self.counts_by_severity.get(severity, 0)

    def by_category(self) -> dict:
        counts = {}
        for f in self.findings:
            counts[f.category] = counts.get(f.category, 0) + 1
        return dict(sorted(counts.items()))

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "files_analyzed": self.files_analyzed,
            "files_skipped": self.files_skipped,
            "detectors_run": self.detectors_run,
            "cancelled": self.cancelled,
            "overflow_checks": self.overflow_checks,
            "anchor_version": self.anchor_version,
            "summary": {
                "total": self.total,
                "by_severity": dict(self.counts_by_severity),
                "by_category": self.by_category(),
            },
            "findings": [f.to_dict() for f in self.findings],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def dedupe_key(finding: Finding) -> tuple:
    return (finding.category, finding.file, finding.line, finding.message)


def sort_key(finding: Finding) -> tuple:
    return (
        SEVERITY_RANK.get(finding.severity, len(SEVERITY_ORDER)),
        finding.file,
        finding.line,
        finding.category,
        finding.column,
        finding.message,
        finding.id,
    )


def aggregate(results: Iterable[Iterable[Finding]], **metadata) -> AnalysisReport:
    """Concatenate, deduplicate, count and sort findings.

    ``results`` holds one iterable of findings per file (or per detector);
    the outcome does not depend on their order. Of several findings sharing
    a dedupe key, the one that sorts first is kept.
    """
    merged = {}
    for result in results:
        for finding in result:
            key = dedupe_key(finding)
            kept = merged.get(key)
            if kept is None or sort_key(finding) < sort_key(kept):
                merged[key] = finding
    findings = sorted(merged.values(), key=sort_key)
    counts = {severity: 0 for severity in SEVERITY_ORDER}
    for finding in findings:
        counts[finding.severity] = counts.get(finding.severity, 0) + 1
    return AnalysisReport(counts_by_severity=counts, findings=findings, **metadata)
