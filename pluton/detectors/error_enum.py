"""
PLU-015: Error enum note

Informational: a ``#[error_code]`` enum is a program's vocabulary of
failures. The note points reviewers at it so every rejected path can be
checked to return a specific variant instead of a generic error.
"""

from pluton.detectors.base import INFO, Category, Detector
from pluton.model import ErrorEnum


class ErrorEnumDetector(Detector):
    id = "PLU-015"
    category = Category.ERROR_ENUM
    name = "Error enum"
    default_severity = INFO
    applies_to = frozenset({ErrorEnum.kind})
    description = "Program-specific error enum; check that failure paths use it."
    remediation = (
        "Return these variants through err!/require! so every rejected "
        "instruction reports a specific error code."
    )

    def check(self, declaration, model, context):
        count = len(declaration.variants)
        return [self._finding(
            model, declaration.line, declaration.column,
            f"Error enum '{declaration.name}' detected ({count} "
            f"variant{'s' if count != 1 else ''}): ensure proper error handling",
        )]
