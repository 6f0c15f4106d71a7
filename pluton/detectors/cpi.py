"""
PLU-001 / PLU-002 / PLU-011: Cross-program invocation checks

A cross-program invocation (CPI) hands control, and any signer privileges
attached to the passed accounts, to whatever program the target account
points at. When that target is a raw ``AccountInfo`` / ``UncheckedAccount``
the caller chooses it: nothing stops an attacker from substituting a
program of their own that, for example, records a fake transfer or drains
PDA-signed accounts.

Three detectors live here:
  - ArbitraryCPI: the invoked program handle is generic-account-typed and
    the function never compares its key with an expected program id before
    the call.
  - UncheckedProgramField: the accounts struct declares that handle without
    an ``address`` or key-equality constraint.
  - GenericCPIValidationHint: a lower-confidence note on every call site
    that has no validation code right before it.
"""

import re

from pluton.detectors.base import (
    CRITICAL,
    WARNING,
    VALIDATION_RE,
    Category,
    Detector,
    find_cpi_calls,
    has_identity_check,
    resolve_handle,
)
from pluton.model import AccountStruct, FunctionDecl


class ArbitraryCpiDetector(Detector):
    id = "PLU-001"
    category = Category.ARBITRARY_CPI
    name = "Arbitrary cross-program invocation"
    default_severity = CRITICAL
    applies_to = frozenset({FunctionDecl.kind})
    description = (
        "A CPI targets a program handle supplied as an unchecked account, "
        "with no program id comparison before the call."
    )
    remediation = (
        "Compare the target's key with the expected program id before invoking "
        "(require_keys_eq!(program.key(), expected::ID)), or declare the handle "
        "as Program<'info, T> so Anchor checks it."
    )

    def check(self, declaration, model, context):
        findings = []
        for call in find_cpi_calls(declaration):
            if call.handle is None:
                continue
            type_ref = resolve_handle(declaration, call.handle, model)
            if type_ref is None or not type_ref.generic_account:
                continue
            if has_identity_check(declaration, call.handle, call.offset):
                continue
            line, column = call.position
            findings.append(self._finding(
                model, line, column,
                f"CPI in '{declaration.name}' invokes program account "
                f"'{call.handle}' without verifying its program id",
            ))
        return findings


class UncheckedProgramFieldDetector(Detector):
    id = "PLU-002"
    category = Category.UNCHECKED_PROGRAM_FIELD
    name = "Unchecked program account field"
    default_severity = CRITICAL
    applies_to = frozenset({AccountStruct.kind})
    description = (
        "An accounts struct field used as a CPI target is a raw account "
        "with no address constraint."
    )
    remediation = (
        "Declare the field as Program<'info, T> / Interface<'info, T>, or add "
        "#[account(address = expected::ID)]."
    )

    KEY_CONSTRAINT_TEMPLATE = r"^constraint\s*=\s*{name}\s*\.\s*key\b(?:\s*\(\s*\))?\s*=="

    def check(self, declaration, model, context):
        if declaration.role != "accounts":
            return []
        targets = self._cpi_targets(declaration, model)
        findings = []
        for account in declaration.fields:
            if not account.type_ref.generic_account or account.name not in targets:
                continue
            if self._has_identity_constraint(account):
                continue
            findings.append(self._finding(
                model, account.line, account.column,
                f"Field '{account.name}' of '{declaration.name}' is used as a CPI "
                f"target but is not constrained to a program id",
            ))
        return findings

    @staticmethod
    def _cpi_targets(struct: AccountStruct, model) -> set:
        targets = set()
        for function in model.functions():
            if function.context_struct not in (None, struct.name):
                continue
            for call in find_cpi_calls(function):
                if call.handle is not None:
                    targets.add(call.handle)
        return targets

    def _has_identity_constraint(self, account) -> bool:
        key_re = re.compile(self.KEY_CONSTRAINT_TEMPLATE.format(name=re.escape(account.name)))
        for token in account.account_tokens():
            if re.match(r"address\s*=", token) or key_re.search(token):
                return True
        return False


class GenericCpiValidationHintDetector(Detector):
    id = "PLU-011"
    category = Category.GENERIC_CPI_VALIDATION_HINT
    name = "CPI without adjacent validation"
    default_severity = WARNING
    applies_to = frozenset({FunctionDecl.kind})
    description = "Cross-program invocation with no validation code right before it."
    remediation = "Validate all accounts passed to the CPI before invoking."

    LOOKBEHIND_LINES = 3

    def check(self, declaration, model, context):
        findings = []
        for call in find_cpi_calls(declaration):
            if self._validated(declaration.body_text, call.offset):
                continue
            line, column = call.position
            findings.append(self._finding(
                model, line, column,
                f"Cross-program invocation '{call.callee}' in '{declaration.name}' "
                f"has no adjacent account validation",
            ))
        return findings

    def _validated(self, body: str, offset: int) -> bool:
        line_start = body.rfind("\n", 0, offset) + 1
        preceding = [ln for ln in body[:line_start].split("\n") if ln.strip()]
        window = preceding[-self.LOOKBEHIND_LINES:]
        return any(VALIDATION_RE.search(ln) for ln in window)
