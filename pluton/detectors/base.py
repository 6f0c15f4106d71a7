"""Base class and shared helpers for vulnerability detectors."""

import hashlib
import re
from dataclasses import dataclass
from typing import Optional

from pluton.model import (
    TYPED_ACCOUNT_TYPES,
    FunctionDecl,
    StructuralModel,
    TypeRef,
    make_type_ref,
    split_top_level,
)


CRITICAL = "Critical"
HIGH = "High"
MEDIUM = "Medium"
LOW = "Low"
WARNING = "Warning"
INFO = "Info"

SEVERITY_ORDER = (CRITICAL, HIGH, MEDIUM, LOW, WARNING, INFO)
SEVERITY_RANK = {name: rank for rank, name in enumerate(SEVERITY_ORDER)}


class Category:
    """Finding categories. Renderers key their knowledge-base text on these."""

    ARBITRARY_CPI = "ArbitraryCPI"
    UNCHECKED_PROGRAM_FIELD = "UncheckedProgramField"
    MISSING_REINIT_CHECK = "MissingReinitCheck"
    UNCHECKED_REMAINING_ACCOUNTS = "UncheckedRemainingAccounts"
    UNCHECKED_ACCOUNT_INFO_FIELD = "UncheckedAccountInfoField"
    ARITHMETIC_OVERFLOW = "ArithmeticOverflow"
    LARGE_INTEGER_LITERAL = "LargeIntegerLiteral"
    BUMP_SEED_NON_CANONICAL = "BumpSeedNonCanonical"
    HARDCODED_BUMP_SEED = "HardcodedBumpSeed"
    MISSING_IS_INITIALIZED_FIELD = "MissingIsInitializedField"
    ATA_INIT_MODE = "AssociatedTokenAccountInitMode"
    INIT_IF_NEEDED_USAGE = "InitIfNeededUsage"
    SPACE_WITHOUT_INIT = "SpaceWithoutInit"
    GENERIC_CPI_VALIDATION_HINT = "GenericCPIValidationHint"
    ERROR_ENUM = "ErrorEnum"
    ACCOUNT_INFO_CAST = "AccountInfoCast"
    OVERFLOW_CHECKS_ENABLED = "OverflowChecksEnabled"
    UNPARSEABLE_SOURCE = "UnparseableSource"
    DETECTOR_INTERNAL_ERROR = "DetectorInternalError"


CATEGORIES = tuple(
    value for key, value in vars(Category).items() if key.isupper()
)


def finding_id(category: str, file: str, line: int, column: int, message: str) -> str:
    """Stable identifier of a finding, identical across re-scans."""
    digest = hashlib.sha256(
        f"{category}|{file}|{line}|{column}|{message}".encode("utf-8")
    )
    return digest.hexdigest()[:16]


@dataclass(frozen=True)
class Finding:
    """A single vulnerability finding."""

    id: str
    category: str
    severity: str
    file: str
    line: int
    column: int
    message: str
    remediation: str = ""
    evidence_snippet: str = ""

    @classmethod
    def create(
        cls,
        category: str,
        severity: str,
        file: str,
        line: int,
        column: int,
        message: str,
        remediation: str = "",
        evidence_snippet: str = "",
    ) -> "Finding":
        return cls(
            id=finding_id(category, file, line, column, message),
            category=category,
            severity=severity,
            file=file,
            line=line,
            column=column,
            message=message,
            remediation=remediation,
            evidence_snippet=evidence_snippet,
        )

    def to_dict(self) -> dict:
        """Convert finding to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "category": self.category,
            "severity": self.severity,
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "message": self.message,
            "remediation": self.remediation,
            "evidence_snippet": self.evidence_snippet,
        }


@dataclass(frozen=True)
class DetectionContext:
    """Project-wide facts shared by every detector in a run."""

    overflow_checks: bool = False


class Detector:
    """Base class for vulnerability detectors.

    Detectors are stateless: ``check`` is a pure function of one declaration
    and the model it belongs to.
    """

    id: str = ""
    category: str = ""
    name: str = ""
    default_severity: str = ""
    applies_to: frozenset = frozenset()
    description: str = ""
    remediation: str = ""

    def applies(self, declaration) -> bool:
        return declaration.kind in self.applies_to

    def check(self, declaration, model: StructuralModel, context: DetectionContext) -> list:
        """Return the findings for one declaration."""
        raise NotImplementedError

    def _finding(
        self,
        model: StructuralModel,
        line: int,
        column: int,
        message: str,
        severity: Optional[str] = None,
    ) -> Finding:
        return Finding.create(
            category=self.category,
            severity=severity or self.default_severity,
            file=model.path,
            line=line,
            column=column,
            message=message,
            remediation=self.remediation,
            evidence_snippet=self._extract_snippet(model.text, line),
        )

    @staticmethod
    def _extract_snippet(content: str, line: int, context: int = 2) -> str:
        """Extract code snippet around a given line."""
        if line <= 0 or not content:
            return ""
        lines = content.split("\n")
        start = max(0, line - context - 1)
        end = min(len(lines), line + context)
        snippet_lines = []
        for i in range(start, end):
            prefix = ">>> " if i == line - 1 else "    "
            snippet_lines.append(f"{prefix}{i + 1:4d} | {lines[i]}")
        return "\n".join(snippet_lines)


# ── Shared body helpers ─────────────────────────────────────────────────────

CPI_CALL_RE = re.compile(
    r"\b(invoke_signed_unchecked|invoke_signed|invoke_unchecked|invoke"
    r"|CpiContext\s*::\s*new_with_signer|CpiContext\s*::\s*new)\s*\("
)

VALIDATION_RE = re.compile(
    r"\brequire(?:_\w+)?!|\bassert(?:_\w+)?!|==|!="
    r"|\.owner\b|\b\w*(?:check|verify|validate)(?!ed)\w*\s*\("
)

ASSIGNMENT_RE = re.compile(r"\b(\w+)\s*\.\s*(\w+)\s*=(?!=)")

INITIALIZER_NAME_RE = re.compile(r"init|create")

_HANDLE_PATTERNS = (
    re.compile(r"\baccounts\s*\.\s*(\w+)"),
    re.compile(r"\b(\w+)\s*\.\s*(?:key|to_account_info|clone|as_ref)\b"),
    re.compile(r"^[\s&*]*(\w+)\s*$"),
)
_CALL_RE = re.compile(r"[\w:]+\s*(?:::\s*<[^>]*>)?\s*\(")
# Instruction builders whose first argument is the id of the invoked program.
# Everything else (system_instruction::*, helpers of fixed programs) targets
# a program the caller cannot substitute.
_PROGRAM_FIRST_BUILDER_RE = re.compile(
    r"(?:^|::)(?:spl_token\w*|token_2022)::instruction::\w+$"
    r"|(?:^|::)Instruction::new_with_\w+$"
)
_PROGRAM_ID_FIELD_RE = re.compile(r"\bprogram_id\s*:\s*([^,}]+)")
_IDENTITY_RE = re.compile(r"\bkey\b|\bid\s*\(|\bID\b|\bprogram_id\b|\b[A-Z_]*PROGRAM_ID\b")


@dataclass(frozen=True)
class CpiCall:
    """A cross-program invocation site inside a function body."""

    function: FunctionDecl
    callee: str
    offset: int
    args: tuple = ()
    handle: Optional[str] = None

    @property
    def position(self) -> tuple[int, int]:
        return self.function.position(self.offset)


def matching_paren(skeleton: str, open_at: int) -> int:
    """Offset of the delimiter closing the one at ``open_at``."""
    depth = 0
    for i in range(open_at, len(skeleton)):
        ch = skeleton[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
            if depth == 0:
                return i
    return len(skeleton)


def statement_end(skeleton: str, pos: int) -> int:
    """Offset of the ``;`` ending the statement that contains ``pos``."""
    depth = 0
    for i in range(pos, len(skeleton)):
        ch = skeleton[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
            if depth < 0:
                return i
        elif ch == ";" and depth == 0:
            return i
    return len(skeleton)


def call_args(text: str, skeleton: str, open_at: int) -> tuple:
    """Raw argument texts of the call whose ``(`` is at ``open_at``."""
    close = matching_paren(skeleton, open_at)
    inner_skel = skeleton[open_at + 1 : close]
    inner = text[open_at + 1 : close]
    return tuple(
        inner[a:b].strip() for a, b in split_top_level(inner_skel) if inner[a:b].strip()
    )


def find_cpi_calls(function: FunctionDecl) -> list[CpiCall]:
    """Every CPI call site in a function body, with its target handle."""
    text, skel = function.body_text, function.body_skeleton
    calls = []
    for m in CPI_CALL_RE.finditer(skel):
        prefix = skel[max(0, m.start() - 4) : m.start()]
        if prefix.rstrip().endswith("fn") or prefix.endswith("."):
            continue
        open_at = m.end() - 1
        args = call_args(text, skel, open_at)
        callee = re.sub(r"\s+", "", m.group(1))
        handle = None
        if args:
            if callee.startswith("CpiContext"):
                handle = _handle_in(args[0])
            else:
                handle = _instruction_program(function, args[0], m.start())
        calls.append(CpiCall(function, callee, m.start(), args, handle))
    return calls


def _handle_in(expr: str) -> Optional[str]:
    for pattern in _HANDLE_PATTERNS:
        m = pattern.search(expr)
        if m and m.group(1) not in ("ctx", "self"):
            return m.group(1)
    return None


def _instruction_program(function: FunctionDecl, expr: str, before: int) -> Optional[str]:
    """Handle naming the program an ``invoke`` instruction targets."""
    local = re.fullmatch(r"[\s&*]*(\w+)\s*", expr)
    if local:
        binding = local_binding(function, local.group(1), before)
        if binding is None:
            return local.group(1)
        expr = binding
    m = _PROGRAM_ID_FIELD_RE.search(expr)
    if m:
        return _handle_in(m.group(1))
    m = _CALL_RE.search(expr)
    if m:
        builder = re.sub(r"\s+", "", expr[m.start() : m.end() - 1])
        if not _PROGRAM_FIRST_BUILDER_RE.search(builder):
            return None
        open_at = m.end() - 1
        skeleton = _rough_skeleton(expr)
        args = call_args(expr, skeleton, open_at)
        if args:
            return _handle_in(args[0])
        return None
    return _handle_in(expr)


def _rough_skeleton(expr: str) -> str:
    return re.sub(r'"(?:\\.|[^"\\])*"', lambda m: '"' + " " * (len(m.group(0)) - 2) + '"', expr)


def local_binding(function: FunctionDecl, name: str, before: int) -> Optional[str]:
    """Right-hand side of the last ``let name = ...;`` before ``before``."""
    skel = function.body_skeleton
    found = None
    for m in re.finditer(rf"\blet\s+(?:mut\s+)?{re.escape(name)}\b[^=;]*=(?!=)", skel[:before]):
        found = m
    if found is None:
        return None
    end = statement_end(skel, found.end())
    return function.body_text[found.end() : end].strip()


def resolve_handle(function: FunctionDecl, handle: str, model: StructuralModel) -> Optional[TypeRef]:
    """Declared type of a handle used by a function, when it can be found.

    Looks at the function's ``Context<...>`` accounts struct, then its
    parameters, then ``let`` bindings in the body.
    """
    container = model.find_struct(function.context_struct)
    if container is not None:
        account = container.field(handle)
        if account is not None:
            return account.type_ref
    param = function.param(handle)
    if param is not None:
        return param.type_ref
    binding = local_binding(function, handle, len(function.body_skeleton))
    if binding is None:
        return None
    if re.search(r"\bnext_account_info\s*\(|\bremaining_accounts\b", binding):
        return make_type_ref("AccountInfo")
    m = re.search(r"\baccounts\s*\.\s*(\w+)", binding)
    if m and container is not None and container.field(m.group(1)) is not None:
        return container.field(m.group(1)).type_ref
    m = re.match(r"[\s&*]*(\w+)\s*\[", binding)
    if m:
        source = function.param(m.group(1))
        if source is not None and "AccountInfo" in source.type_ref.text:
            return make_type_ref("AccountInfo")
    return None


def has_identity_check(function: FunctionDecl, handle: str, before: int) -> bool:
    """Whether a statement before ``before`` compares ``handle`` to a program id."""
    text = function.body_text[:before]
    name = re.compile(rf"\b{re.escape(handle)}\b")
    for clause in re.split(r"[;{}]", text):
        if not name.search(clause):
            continue
        if not re.search(r"==|!=|require_keys_eq!|assert_eq!|assert_keys_eq", clause):
            continue
        if _IDENTITY_RE.search(clause):
            return True
    return False


def is_initializer(function: FunctionDecl) -> bool:
    return bool(INITIALIZER_NAME_RE.search(function.name.lower()))


def first_write(function: FunctionDecl) -> Optional[int]:
    """Offset of the first account-field assignment in the body."""
    m = ASSIGNMENT_RE.search(function.body_skeleton)
    if m:
        return m.start()
    m = re.search(r"\.\s*(?:set_inner|serialize|pack_into_slice)\s*\(|\bpack\s*\(", function.body_skeleton)
    return m.start() if m else None


@dataclass(frozen=True)
class InitTarget:
    """A data account an initializer writes."""

    data_type: str
    protected: bool = False
    field_name: Optional[str] = None


def initializer_targets(function: FunctionDecl, model: StructuralModel) -> list[InitTarget]:
    """Data accounts written by an initializer.

    With a ``Context<...>`` parameter these are the typed account fields of
    its accounts struct; ``protected`` marks fields created by Anchor's
    ``init`` / ``zero`` constraints, which cannot be initialized twice.
    Without one, every ``data`` record of the model named in the body is a
    target.
    """
    container = model.find_struct(function.context_struct)
    if container is not None:
        targets = []
        for account in container.fields:
            if account.type_ref.base not in TYPED_ACCOUNT_TYPES:
                continue
            tokens = account.account_tokens()
            protected = "init" in tokens or "zero" in tokens
            data_type = account.type_ref.inner_type or account.type_ref.base
            targets.append(InitTarget(data_type, protected, account.name))
        return targets
    return [
        InitTarget(struct.name)
        for struct in model.account_structs()
        if struct.role == "data"
        and re.search(rf"\b{re.escape(struct.name)}\b", function.body_skeleton)
    ]


def unprotected_initializers(model: StructuralModel) -> list[tuple[FunctionDecl, list[InitTarget]]]:
    """Initializers that write fields and have at least one unprotected target."""
    found = []
    for function in model.functions():
        if not is_initializer(function) or first_write(function) is None:
            continue
        open_targets = [t for t in initializer_targets(function, model) if not t.protected]
        if open_targets:
            found.append((function, open_targets))
    return found
