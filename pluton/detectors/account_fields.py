"""
Account constraint checks on ``#[derive(Accounts)]`` fields.

  - PLU-005 UncheckedAccountInfoField: a raw ``AccountInfo`` /
    ``UncheckedAccount`` field with no constraint that validates it. Anchor
    performs no owner, type or signer check on these, so any account can be
    passed in its place.
  - PLU-010 AssociatedTokenAccountInitMode: an associated token account
    created with bare ``init``. The instruction fails if the user already
    has the ATA, which anyone can create for them beforehand.
  - PLU-012 HardcodedBumpSeed: ``bump = <literal>`` pins a bump that is not
    necessarily the canonical one.
  - PLU-013 InitIfNeededUsage: ``init_if_needed`` accepts an existing
    account, so the handler must not assume a fresh one.
  - PLU-014 SpaceWithoutInit: ``space`` only has an effect together with
    ``init`` / ``init_if_needed``.

Constraints are matched on the raw top-level tokens of the field's
``#[account(...)]`` attributes.
"""

import re

from pluton.detectors.base import CRITICAL, HIGH, WARNING, Category, Detector
from pluton.model import AccountStruct

VALIDATING_CONSTRAINT_RE = re.compile(
    r"^(?:owner|signer|constraint|address|seeds|has_one|executable"
    r"|token|associated_token|mint)\b"
)
HAS_ONE_RE = re.compile(r"^has_one\s*=\s*(\w+)")
ATA_NAME_RE = re.compile(
    r"(?:^|_)(?:ata|token_account)(?:$|_)"
    r"|(?:^|(?<=[a-z_]))[tT]okenAccount(?![a-z0-9])"
)
HARDCODED_BUMP_RE = re.compile(r"^bump\s*=\s*(\d[\w]*)$")
SPACE_RE = re.compile(r"^space\s*=")


class _FieldDetector(Detector):
    """Runs ``check_field`` over every field of an accounts struct."""

    applies_to = frozenset({AccountStruct.kind})

    def check(self, declaration, model, context):
        if declaration.role != "accounts":
            return []
        findings = []
        for account in declaration.fields:
            findings.extend(self.check_field(account, declaration, model))
        return findings

    def check_field(self, account, struct, model) -> list:
        raise NotImplementedError


class UncheckedAccountInfoFieldDetector(_FieldDetector):
    id = "PLU-005"
    category = Category.UNCHECKED_ACCOUNT_INFO_FIELD
    name = "Unchecked AccountInfo field"
    default_severity = HIGH
    description = "Raw account field without an ownership, signer or address constraint."
    remediation = (
        "Use a typed wrapper (Account<'info, T>, Signer<'info>, Program<'info, T>) "
        "or add a validating constraint such as owner = ..., address = ..., "
        "seeds = [...] or constraint = ..."
    )

    def check_field(self, account, struct, model):
        if not account.type_ref.generic_account:
            return []
        if any(VALIDATING_CONSTRAINT_RE.match(t) for t in account.account_tokens()):
            return []
        if account.name in self._has_one_targets(struct):
            return []
        return [self._finding(
            model, account.line, account.column,
            f"Unchecked account '{account.name}' in '{struct.name}' has no "
            f"validating constraint",
        )]

    @staticmethod
    def _has_one_targets(struct) -> set:
        names = set()
        for other in struct.fields:
            for token in other.account_tokens():
                m = HAS_ONE_RE.match(token)
                if m:
                    names.add(m.group(1))
        return names


class AtaInitModeDetector(_FieldDetector):
    id = "PLU-010"
    category = Category.ATA_INIT_MODE
    name = "Associated token account created with init"
    default_severity = CRITICAL
    description = (
        "Associated token account uses `init`, which fails when the account "
        "already exists."
    )
    remediation = (
        "Use `init_if_needed` for associated token accounts so an existing "
        "ATA does not make the instruction fail."
    )

    def check_field(self, account, struct, model):
        tokens = account.account_tokens()
        is_ata = any(t.startswith("associated_token") for t in tokens) or ATA_NAME_RE.search(account.name)
        if not is_ata or "init" not in tokens or "init_if_needed" in tokens:
            return []
        return [self._finding(
            model, account.line, account.column,
            f"Associated token account '{account.name}' in '{struct.name}' is "
            f"created with 'init' instead of 'init_if_needed'",
        )]


class HardcodedBumpSeedDetector(_FieldDetector):
    id = "PLU-012"
    category = Category.HARDCODED_BUMP_SEED
    name = "Hardcoded bump seed"
    default_severity = HIGH
    description = "PDA constraint pins a literal bump value."
    remediation = (
        "Use bare `bump` to let Anchor find the canonical bump, or a bump "
        "stored at creation (bump = account.bump)."
    )

    def check_field(self, account, struct, model):
        for token in account.account_tokens():
            m = HARDCODED_BUMP_RE.match(token)
            if m:
                return [self._finding(
                    model, account.line, account.column,
                    f"Field '{account.name}' in '{struct.name}' uses hardcoded "
                    f"bump {m.group(1)}",
                )]
        return []


class InitIfNeededUsageDetector(_FieldDetector):
    id = "PLU-013"
    category = Category.INIT_IF_NEEDED_USAGE
    name = "init_if_needed usage"
    default_severity = WARNING
    description = "`init_if_needed` also accepts an account that already exists."
    remediation = (
        "Make sure the handler does not reset an existing account to its "
        "initial state; check its fields before writing."
    )

    def check_field(self, account, struct, model):
        if "init_if_needed" not in account.account_tokens():
            return []
        return [self._finding(
            model, account.line, account.column,
            f"Field '{account.name}' in '{struct.name}' uses init_if_needed",
        )]


class SpaceWithoutInitDetector(_FieldDetector):
    id = "PLU-014"
    category = Category.SPACE_WITHOUT_INIT
    name = "space without init"
    default_severity = WARNING
    description = "`space` is declared on an account that is not created here."
    remediation = "Add `init` when specifying space: #[account(init, payer = ..., space = ...)]."

    def check_field(self, account, struct, model):
        tokens = account.account_tokens()
        if not any(SPACE_RE.match(t) for t in tokens):
            return []
        if "init" in tokens or "init_if_needed" in tokens:
            return []
        return [self._finding(
            model, account.line, account.column,
            f"Field '{account.name}' in '{struct.name}' declares space without "
            f"an init constraint",
        )]
