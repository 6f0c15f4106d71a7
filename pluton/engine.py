"""Core analysis engine: build models, run detectors, aggregate findings."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

from pluton.aggregator import AnalysisReport, aggregate
from pluton.config import AnalyzerConfig
from pluton.detectors.base import INFO, WARNING, Category, DetectionContext, Finding
from pluton.errors import InvalidInputSet
from pluton.model import ModelBuilder, ParseFailure, SourceUnit
from pluton.registry import DetectorRegistry

logger = logging.getLogger(__name__)

OVERFLOW_CHECKS_NOTE = (
    "Project has overflow-checks = true in Cargo.toml, which provides runtime "
    "protection against integer overflow/underflow"
)


class AnalysisEngine:
    """Runs the detector registry over a set of source files."""

    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        registry: Optional[DetectorRegistry] = None,
    ):
        self.config = config or AnalyzerConfig()
        self.registry = registry or DetectorRegistry(workers=self.config.detector_workers)
        self.builder = ModelBuilder(**self.config.model_limits)

    def analyze(
        self,
        sources: Iterable[tuple[str, str]],
        cancel: Optional[threading.Event] = None,
        target: str = "",
        anchor_version: Optional[str] = None,
    ) -> AnalysisReport:
        """Analyze ``(path, raw_text)`` pairs and return the aggregated report.

        Raises:
            InvalidInputSet: If ``sources`` is empty.
        """
        sources = list(sources)
        if not sources:
            raise InvalidInputSet("no source files to analyze")

        start = time.time()
        overflow_checks = bool(self.config.overflow_checks)
        context = DetectionContext(overflow_checks=overflow_checks)

        def task(source):
            if cancel is not None and cancel.is_set():
                return None
            path, text = source
            return self.analyze_unit(path, text, context)

        workers = max(1, min(self.config.workers, len(sources)))
        if workers == 1:
            results = [task(source) for source in sources]
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(task, sources))

        completed = [r for r in results if r is not None]
        skipped = len(results) - len(completed)
        if overflow_checks:
            completed.append([overflow_checks_note()])

        report = aggregate(
            completed,
            target=target,
            files_analyzed=len(results) - skipped,
            files_skipped=skipped,
            detectors_run=len(self.registry),
            cancelled=skipped > 0,
            overflow_checks=overflow_checks,
            anchor_version=anchor_version,
        )
        logger.debug(
            "Analyzed %d files (%d skipped) in %.2fs: %d findings",
            report.files_analyzed, skipped, time.time() - start, report.total,
        )
        return report

    def analyze_unit(self, path: str, text: str, context: DetectionContext) -> list[Finding]:
        """Findings for one file; a parse failure becomes one Warning finding."""
        unit = self.build_unit(path, text)
        if not unit.parsed:
            logger.warning(
                "Could not parse %s:%d:%d: %s",
                path, unit.failure.line, unit.failure.column, unit.failure.message,
            )
            return [unparseable_finding(path, unit.failure)]
        findings = self.registry.run(unit.model, unit, context)
        logger.debug("%s: %d declarations, %d findings",
                     path, len(unit.model.declarations), len(findings))
        return findings

    def build_unit(self, path: str, text: str) -> SourceUnit:
        result = self.builder.build(path, text)
        if isinstance(result, ParseFailure):
            return SourceUnit(path=path, raw_text=text, failure=result)
        return SourceUnit(path=path, raw_text=text, model=result)

    def analyze_text(self, text: str, path: str = "<input>") -> AnalysisReport:
        """Analyze a single in-memory source string."""
        return self.analyze([(path, text)], target=path)


def unparseable_finding(path: str, failure: ParseFailure) -> Finding:
    return Finding.create(
        category=Category.UNPARSEABLE_SOURCE,
        severity=WARNING,
        file=path,
        line=failure.line,
        column=failure.column,
        message=f"Could not parse source: {failure.message}",
        remediation="Check that the file compiles; it was not analyzed.",
    )


def overflow_checks_note() -> Finding:
    return Finding.create(
        category=Category.OVERFLOW_CHECKS_ENABLED,
        severity=INFO,
        file="Cargo.toml",
        line=1,
        column=1,
        message=OVERFLOW_CHECKS_NOTE,
    )
