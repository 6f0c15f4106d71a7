"""Detector registry: runs every applicable detector over one file's model."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from pluton.detectors import ALL_DETECTORS
from pluton.detectors.base import LOW, Category, DetectionContext, Detector, Finding
from pluton.model import SourceUnit, StructuralModel

logger = logging.getLogger(__name__)


class DetectorRegistry:
    """Ordered, flat collection of independent detectors."""

    def __init__(self, detectors: Optional[list] = None, workers: int = 1):
        if detectors is None:
            detectors = [detector_class() for detector_class in ALL_DETECTORS]
        self.detectors = list(detectors)
        self.workers = max(1, workers)

    def __len__(self) -> int:
        return len(self.detectors)

    def __iter__(self):
        return iter(self.detectors)

    def run(
        self,
        model: StructuralModel,
        unit: Optional[SourceUnit] = None,
        context: Optional[DetectionContext] = None,
    ) -> list[Finding]:
        """Run applicable detectors over ``model`` and concatenate their findings."""
        context = context or DetectionContext()
        applicable = [
            d for d in self.detectors
            if any(d.applies(decl) for decl in model.declarations)
        ]
        if self.workers > 1 and len(applicable) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                results = list(pool.map(lambda d: self._run_one(d, model, unit, context), applicable))
        else:
            results = [self._run_one(d, model, unit, context) for d in applicable]
        findings = []
        for result in results:
            findings.extend(result)
        return findings

    def _run_one(
        self,
        detector: Detector,
        model: StructuralModel,
        unit: Optional[SourceUnit],
        context: DetectionContext,
    ) -> list[Finding]:
        """Run one detector over all matching declarations inside one fault boundary."""
        findings = []
        try:
            for declaration in model.declarations:
                if detector.applies(declaration):
                    findings.extend(detector.check(declaration, model, context))
        except Exception as exc:
            path = unit.path if unit is not None else model.path
            logger.warning(
                "Detector %s failed on %s", detector.id or type(detector).__name__, path,
                exc_info=True,
            )
            return [internal_error_finding(detector, path, exc)]
        return findings


def internal_error_finding(detector: Detector, path: str, exc: Exception) -> Finding:
    name = detector.id or type(detector).__name__
    return Finding.create(
        category=Category.DETECTOR_INTERNAL_ERROR,
        severity=LOW,
        file=path,
        line=1,
        column=1,
        message=f"Detector {name} ({type(detector).__name__}) failed: {type(exc).__name__}: {exc}",
        remediation="Report this as an analyzer bug; the file was not fully checked by this detector.",
    )
