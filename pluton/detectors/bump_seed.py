"""
PLU-008: Non-canonical bump seed

For a given set of seeds several bumps can yield a valid program-derived
address; only the one found by ``find_program_address`` is canonical. A
handler that derives an address from a caller-supplied bump lets the caller
pick a different, non-canonical address for the same seeds, e.g. to get a
second "unique" vault or escrow.

Critical when the function never derives the canonical bump; High when it
does but never compares the supplied value against it.
"""

import re

from pluton.detectors.base import CRITICAL, HIGH, Category, Detector, matching_paren
from pluton.model import FunctionDecl

CANONICAL_RE = re.compile(r"\bfind_program_address\b|\bbumps\s*\.")
CREATE_ADDRESS_RE = re.compile(r"\bcreate_program_address\s*\(")


class BumpSeedNonCanonicalDetector(Detector):
    id = "PLU-008"
    category = Category.BUMP_SEED_NON_CANONICAL
    name = "Non-canonical bump seed"
    default_severity = CRITICAL
    applies_to = frozenset({FunctionDecl.kind})
    description = "Program address derived from a caller-supplied bump seed."
    remediation = (
        "Derive the bump with Pubkey::find_program_address (or use ctx.bumps) "
        "and require the supplied bump to equal it, or drop the parameter."
    )

    def check(self, declaration, model, context):
        findings = []
        for param in declaration.parameters:
            if "bump" not in param.name or not param.type_ref.is_integer:
                continue
            site = self._derivation_site(declaration.body_skeleton, param.name)
            if site is None:
                continue
            line, column = declaration.position(site)
            if not CANONICAL_RE.search(declaration.body_skeleton):
                findings.append(self._finding(
                    model, line, column,
                    f"'{declaration.name}' derives an address from caller-supplied "
                    f"'{param.name}' without deriving the canonical bump",
                    severity=CRITICAL,
                ))
            elif not self._compared(declaration.body_skeleton, param.name):
                findings.append(self._finding(
                    model, line, column,
                    f"'{declaration.name}' derives the canonical bump but never "
                    f"compares it with caller-supplied '{param.name}'",
                    severity=HIGH,
                ))
        return findings

    @staticmethod
    def _derivation_site(skeleton: str, name: str):
        m = CREATE_ADDRESS_RE.search(skeleton)
        if m:
            return m.start()
        m = re.search(rf"&\s*\[\s*{re.escape(name)}\s*\]", skeleton)
        return m.start() if m else None

    @staticmethod
    def _compared(skeleton: str, name: str) -> bool:
        word = re.escape(name)
        if re.search(rf"\b{word}\b\s*(?:==|!=)|(?:==|!=)\s*[&*]*\b{word}\b", skeleton):
            return True
        for m in re.finditer(r"\b(?:require_eq|require_neq|assert_eq|assert_ne)!\s*\(", skeleton):
            close = matching_paren(skeleton, m.end() - 1)
            if re.search(rf"\b{word}\b", skeleton[m.end() : close]):
                return True
        return False
