"""
PLU-003 / PLU-009: Reinitialization checks

An initializer that writes account data without first checking whether the
account was already initialized can be called again on a live account,
resetting its authority, balances or configuration to attacker-chosen
values.

Anchor's ``init`` / ``zero`` constraints make this impossible for the
accounts they create. Everything else needs a boolean guard field
(``is_initialized``) in the account data that the initializer reads before
its first write.
"""

import re

from pluton.detectors.base import (
    HIGH,
    WARNING,
    Category,
    Detector,
    first_write,
    initializer_targets,
    is_initializer,
    unprotected_initializers,
)
from pluton.model import AccountStruct, FunctionDecl

GENERIC_GUARD_READ_RE = re.compile(r"\bis_initialized\b|\binitialized\b")


def reads_before(skeleton: str, name: str, stop: int) -> bool:
    """Whether ``name`` is read (not assigned) before offset ``stop``."""
    pattern = re.compile(rf"\b{re.escape(name)}\b(?!\s*=(?!=))")
    return bool(pattern.search(skeleton[:stop]))


class MissingReinitCheckDetector(Detector):
    id = "PLU-003"
    category = Category.MISSING_REINIT_CHECK
    name = "Missing reinitialization check"
    default_severity = HIGH
    applies_to = frozenset({FunctionDecl.kind})
    description = (
        "Initializer writes account data without guarding against an "
        "already-initialized account."
    )
    remediation = (
        "Create the account with Anchor's `init` constraint, or add an "
        "`is_initialized: bool` field and require!(!account.is_initialized) "
        "before writing."
    )

    def check(self, declaration, model, context):
        if not is_initializer(declaration):
            return []
        write_at = first_write(declaration)
        if write_at is None:
            return []
        targets = initializer_targets(declaration, model)
        open_targets = [t for t in targets if not t.protected]
        if targets and not open_targets:
            return []

        problems = []
        for target in open_targets:
            struct = model.find_struct(target.data_type)
            if struct is None:
                continue
            guard = struct.guard_field()
            if guard is None:
                problems.append(f"'{struct.name}' has no initialization guard field")
            elif not reads_before(declaration.body_skeleton, guard.name, write_at):
                problems.append(
                    f"'{struct.name}.{guard.name}' is not checked before the first write"
                )

        if not problems and not any(model.find_struct(t.data_type) for t in open_targets):
            # Target types live in another file: fall back to any guard read.
            if not GENERIC_GUARD_READ_RE.search(declaration.body_skeleton[:write_at]):
                problems.append("no initialization guard is checked before the first write")

        if not problems:
            return []
        return [self._finding(
            model, declaration.line, declaration.column,
            f"Initializer '{declaration.name}' can reinitialize accounts: "
            + "; ".join(problems),
        )]


class MissingIsInitializedFieldDetector(Detector):
    id = "PLU-009"
    category = Category.MISSING_IS_INITIALIZED_FIELD
    name = "Missing is_initialized field"
    default_severity = WARNING
    applies_to = frozenset({AccountStruct.kind})
    description = "Account struct has no boolean initialization guard field."
    remediation = (
        "Add an `is_initialized: bool` field and check it before writing, or "
        "rely on Anchor's `init` constraint for account creation."
    )

    def check(self, declaration, model, context):
        if declaration.guard_field() is not None:
            return []
        if any(f.type_ref.generic_account for f in declaration.fields):
            reason = "holds unchecked accounts"
        elif declaration.role == "data" and self._initialized_unprotected(declaration, model):
            reason = "is written by an initializer without an init constraint"
        else:
            return []
        return [self._finding(
            model, declaration.line, declaration.column,
            f"Account struct '{declaration.name}' {reason} but has no "
            f"is_initialized guard field",
        )]

    @staticmethod
    def _initialized_unprotected(struct: AccountStruct, model) -> bool:
        for _, targets in unprotected_initializers(model):
            if any(t.data_type == struct.name for t in targets):
                return True
        return False
