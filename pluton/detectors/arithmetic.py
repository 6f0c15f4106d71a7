"""
PLU-006 / PLU-007: Integer arithmetic checks

Release builds of Solana programs wrap on integer overflow unless the
workspace sets ``overflow-checks = true`` in its Cargo profile. A wrapped
balance or supply is a classic way to mint or withdraw more than exists.

ArithmeticOverflow reports every ``+``, ``-`` and ``*`` (and their compound
assignments) in a function body when overflow checks are off.
LargeIntegerLiteral reports integer literals that sit at or beyond the edge
of a 32-bit range, or beyond the range of their own narrow suffix.
"""

import re

from pluton.detectors.base import HIGH, WARNING, Category, Detector
from pluton.model import ConstDecl, FunctionDecl

OPERATOR_RE = re.compile(r"[+\-*]=?")
OPERAND_AFTER_RE = re.compile(r"[\w.]*")
FLOAT_RE = re.compile(r"^\d[\d_]*(?:\.\d*)?(?:[eE]\d*)?(?:_?f(?:32|64))?$|^f(?:32|64)$")
NON_OPERAND_WORDS = frozenset({
    "return", "in", "if", "else", "match", "let", "mut", "as", "ref", "move",
    "break", "while", "for", "const", "static", "dyn", "impl", "where", "use",
})
OPERATION_NAMES = {"+": "addition", "-": "subtraction", "*": "multiplication"}

INT_LITERAL_RE = re.compile(
    r"\b(0x[0-9a-fA-F_]+|0o[0-7_]+|0b[01_]+|\d[\d_]*)"
    r"(u8|u16|u32|u64|u128|usize|i8|i16|i32|i64|i128|isize)?\b"
)
LARGE_LITERAL_THRESHOLD = 0xFFFF_0000
NARROW_LIMITS = {
    "u8": 0xFF, "u16": 0xFFFF, "u32": 0xFFFF_FFFF,
    "i8": 0x7F, "i16": 0x7FFF, "i32": 0x7FFF_FFFF,
}


def binary_operators(skeleton: str):
    """Yield ``(offset, operator)`` for arithmetic binary operators."""
    for m in OPERATOR_RE.finditer(skeleton):
        start, end = m.start(), m.end()
        op = m.group(0)
        if start and skeleton[start - 1] in "+-*":
            continue
        nxt = skeleton[end : end + 1]
        if nxt in (">", "=") or (op == "*" and nxt == "*"):
            continue
        last = _skip_back(skeleton, start)
        if last < 0 or not (skeleton[last].isalnum() or skeleton[last] in "_)]"):
            continue
        left = _token_before(skeleton, last + 1)
        if left in NON_OPERAND_WORDS:
            continue
        first = _skip_forward(skeleton, end)
        if first >= len(skeleton) or not (skeleton[first].isalnum() or skeleton[first] in "_(&*-!"):
            continue
        right = OPERAND_AFTER_RE.match(skeleton, first).group(0)
        if _is_float(left) or _is_float(right):
            continue
        yield start, op


def _skip_back(text: str, pos: int) -> int:
    """Index of the last non-space character before ``pos`` (-1 if none)."""
    i = pos - 1
    while i >= 0 and text[i].isspace():
        i -= 1
    return i


def _skip_forward(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _token_before(text: str, end: int) -> str:
    start = end
    while start > 0 and (text[start - 1].isalnum() or text[start - 1] in "_."):
        start -= 1
    return text[start:end]


def _is_float(token: str) -> bool:
    if not token:
        return False
    if FLOAT_RE.match(token) and ("." in token or "f" in token or "e" in token.lower()):
        return True
    return False


def integer_literals(skeleton: str):
    """Yield ``(offset, text, value, suffix, negative)`` for integer literals."""
    for m in INT_LITERAL_RE.finditer(skeleton):
        start = m.start()
        prev = skeleton[start - 1 : start]
        if prev == "." and skeleton[start - 2 : start - 1] != ".":
            continue
        if prev == "'":
            continue
        if skeleton[m.end() : m.end() + 1] == "." and skeleton[m.end() + 1 : m.end() + 2] != ".":
            continue
        digits = m.group(1).replace("_", "")
        try:
            value = int(digits, 0) if digits[:2].lower() in ("0x", "0o", "0b") else int(digits, 10)
        except ValueError:
            continue
        before = _skip_back(skeleton, start)
        negative = before >= 0 and skeleton[before] == "-"
        yield start, m.group(0), value, m.group(2), negative


def literal_problem(value: int, suffix, negative: bool):
    if suffix in NARROW_LIMITS:
        limit = NARROW_LIMITS[suffix] + (1 if negative and suffix.startswith("i") else 0)
        if value > limit:
            return f"exceeds the range of {suffix}"
        return None
    if value > LARGE_LITERAL_THRESHOLD:
        return "is close to or beyond u32::MAX"
    return None


class ArithmeticOverflowDetector(Detector):
    id = "PLU-006"
    category = Category.ARITHMETIC_OVERFLOW
    name = "Unchecked arithmetic"
    default_severity = HIGH
    applies_to = frozenset({FunctionDecl.kind})
    description = "Integer arithmetic without overflow protection."
    remediation = (
        "Use checked_add / checked_sub / checked_mul (or saturating_*), or set "
        "overflow-checks = true in the release profile of Cargo.toml."
    )

    def check(self, declaration, model, context):
        if context.overflow_checks:
            return []
        findings = []
        for offset, op in binary_operators(declaration.body_skeleton):
            line, column = declaration.position(offset)
            operation = OPERATION_NAMES[op[0]]
            kind = "compound " + operation if op.endswith("=") else operation
            findings.append(self._finding(
                model, line, column,
                f"Potential overflow in unchecked {kind} ('{op}') in '{declaration.name}'",
            ))
        return findings


class LargeIntegerLiteralDetector(Detector):
    id = "PLU-007"
    category = Category.LARGE_INTEGER_LITERAL
    name = "Large integer literal"
    default_severity = WARNING
    applies_to = frozenset({FunctionDecl.kind, ConstDecl.kind})
    description = "Integer literal close to or beyond the range of a narrow integer type."
    remediation = (
        "Use a wider integer type, or named constants such as u32::MAX, and "
        "checked conversions."
    )

    def check(self, declaration, model, context):
        if declaration.kind == ConstDecl.kind:
            skeleton = declaration.literal_skeleton
        else:
            skeleton = declaration.body_skeleton
        findings = []
        for offset, text, value, suffix, negative in integer_literals(skeleton):
            problem = literal_problem(value, suffix, negative)
            if problem is None:
                continue
            line, column = declaration.position(offset)
            findings.append(self._finding(
                model, line, column,
                f"Integer literal {text} in '{declaration.name}' {problem}",
            ))
        return findings
