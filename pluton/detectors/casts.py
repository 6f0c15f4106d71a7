"""
PLU-016: Casting to AccountInfo

An ``as`` cast to ``AccountInfo`` (or a pointer or reference to one) drops
whatever the typed wrapper guaranteed. The account behind the cast must be
validated again by hand before and after the conversion.
"""

import re

from pluton.detectors.base import WARNING, Category, Detector
from pluton.model import FunctionDecl

CAST_RE = re.compile(
    r"\bas\s+"
    r"(?:&\s*(?:'\w+\s+)?(?:mut\s+)?|\*\s*(?:const|mut)\s+)?"
    r"(?:\w+\s*::\s*)*AccountInfo\b"
)


class AccountInfoCastDetector(Detector):
    id = "PLU-016"
    category = Category.ACCOUNT_INFO_CAST
    name = "Cast to AccountInfo"
    default_severity = WARNING
    applies_to = frozenset({FunctionDecl.kind})
    description = "Expression cast to AccountInfo, bypassing typed account checks."
    remediation = "Validate the account before and after casting to AccountInfo."

    def check(self, declaration, model, context):
        findings = []
        for m in CAST_RE.finditer(declaration.body_skeleton):
            line, column = declaration.position(m.start())
            findings.append(self._finding(
                model, line, column,
                f"Casting to AccountInfo in '{declaration.name}': ensure proper validation",
            ))
        return findings
