"""Tolerant structural model of Rust / Anchor source files.

Only the item structure of a file is recovered: functions, account structs,
error enums and constants. Attribute arguments and function bodies are kept
as raw text; detectors interpret them with their own narrow patterns.

The builder never raises. Malformed input (unbalanced delimiters,
unterminated literals, a keyword with no name) or input that exceeds the
parse budget produces a ``ParseFailure`` instead of a model.
"""

import bisect
import logging
import re
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_BYTES = 2 * 1024 * 1024
DEFAULT_MAX_DECLARATIONS = 5000

GENERIC_ACCOUNT_TYPES = frozenset({"AccountInfo", "UncheckedAccount"})
PROGRAM_HANDLE_TYPES = frozenset({"Program", "Interface"})
TYPED_ACCOUNT_TYPES = frozenset({"Account", "AccountLoader", "InterfaceAccount"})
INTEGER_TYPES = frozenset({
    "u8", "u16", "u32", "u64", "u128", "usize",
    "i8", "i16", "i32", "i64", "i128", "isize",
})

GUARD_FIELD_RE = re.compile(r"(?:^|_)init(?:ialized)?(?:$|_)")

_WORD_RE = re.compile(r"r#\w+|\w+")
_RAW_STR_RE = re.compile(r'b?r(#*)"')
_TYPE_NAME_RE = re.compile(r"((?:\w+\s*::\s*)*)(\w+)")
_ITEM_QUALIFIERS = {"async", "unsafe", "default"}
_CLOSERS = {")": "(", "]": "[", "}": "{"}


# ── Model types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TypeRef:
    """A declared type, kept as raw text plus a few heuristic flags."""

    text: str
    base: str = ""
    generic_account: bool = False
    program_handle: bool = False

    @property
    def generic_args(self) -> list[str]:
        """Top-level generic arguments of the outermost (peeled) type."""
        inner = _peel_type(self.text)
        start = inner.find("<")
        if start == -1 or not inner.endswith(">"):
            return []
        body = inner[start + 1 : -1]
        return [body[a:b].strip() for a, b in split_top_level(body) if body[a:b].strip()]

    @property
    def inner_type(self) -> Optional[str]:
        """Base name of the last non-lifetime generic argument.

        ``Account<'info, Vault>`` gives ``Vault``; ``Context<Init<'info>>``
        gives ``Init``.
        """
        for arg in reversed(self.generic_args):
            if arg.startswith("'"):
                continue
            return _base_name(_peel_type(arg))
        return None

    @property
    def is_integer(self) -> bool:
        return self.base in INTEGER_TYPES


@dataclass(frozen=True)
class Attribute:
    """An outer attribute or doc comment.

    ``args`` is the raw text between the attribute's outer parentheses (or
    after ``=``); doc comments are stored with name ``doc``.
    """

    name: str
    args: str
    text: str
    line: int

    @property
    def arg_tokens(self) -> list[str]:
        """Top-level comma-separated arguments, stripped."""
        return [self.args[a:b].strip() for a, b in split_top_level(self.args) if self.args[a:b].strip()]


@dataclass(frozen=True)
class Param:
    name: str
    type_ref: TypeRef


@dataclass(frozen=True)
class FieldDecl:
    name: str
    type_ref: TypeRef
    attributes: tuple = ()
    line: int = 0
    column: int = 0

    def account_tokens(self) -> list[str]:
        """Constraint tokens of the field's ``#[account(...)]`` attributes."""
        tokens = []
        for attr in self.attributes:
            if attr.name == "account":
                tokens.extend(attr.arg_tokens)
        return tokens

    @property
    def docs(self) -> str:
        return "\n".join(a.args for a in self.attributes if a.name == "doc")


@dataclass(frozen=True)
class FunctionDecl:
    kind: ClassVar[str] = "function"

    name: str
    parameters: tuple = ()
    body_text: str = field(default="", repr=False)
    body_skeleton: str = field(default="", repr=False)
    attributes: tuple = ()
    line: int = 0
    column: int = 0
    body_line: int = 0
    body_column: int = 0
    scope: tuple = ()
    program_entry: bool = False

    def position(self, offset: int) -> tuple[int, int]:
        """Translate an offset into ``body_text`` to a file line/column."""
        newlines = self.body_text.count("\n", 0, offset)
        if newlines == 0:
            return self.body_line, self.body_column + offset
        last = self.body_text.rfind("\n", 0, offset)
        return self.body_line + newlines, offset - last

    def param(self, name: str) -> Optional[Param]:
        for p in self.parameters:
            if p.name == name:
                return p
        return None

    @property
    def context_struct(self) -> Optional[str]:
        """Name of the accounts struct in a ``Context<...>`` parameter."""
        for p in self.parameters:
            if p.type_ref.base == "Context":
                return p.type_ref.inner_type
        return None


@dataclass(frozen=True)
class AccountStruct:
    kind: ClassVar[str] = "account_struct"

    name: str
    fields: tuple = ()
    attributes: tuple = ()
    role: str = "accounts"
    line: int = 0
    column: int = 0

    def field(self, name: str) -> Optional[FieldDecl]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def guard_field(self) -> Optional[FieldDecl]:
        """The boolean initialization-guard field, if the struct has one."""
        for f in self.fields:
            if f.type_ref.base == "bool" and GUARD_FIELD_RE.search(f.name):
                return f
        return None


@dataclass(frozen=True)
class ErrorEnum:
    kind: ClassVar[str] = "error_enum"

    name: str
    variants: tuple = ()
    attributes: tuple = ()
    line: int = 0
    column: int = 0


@dataclass(frozen=True)
class ConstDecl:
    kind: ClassVar[str] = "const"

    name: str
    type_ref: TypeRef = TypeRef("")
    literal_text: str = ""
    literal_skeleton: str = field(default="", repr=False)
    line: int = 0
    column: int = 0
    literal_line: int = 0
    literal_column: int = 0

    def position(self, offset: int) -> tuple[int, int]:
        newlines = self.literal_text.count("\n", 0, offset)
        if newlines == 0:
            return self.literal_line, self.literal_column + offset
        last = self.literal_text.rfind("\n", 0, offset)
        return self.literal_line + newlines, offset - last


Declaration = Union[FunctionDecl, AccountStruct, ErrorEnum, ConstDecl]
DECLARATION_KINDS = frozenset(
    cls.kind for cls in (FunctionDecl, AccountStruct, ErrorEnum, ConstDecl)
)


@dataclass(frozen=True)
class StructuralModel:
    """Declarations of one file, in source order."""

    path: str
    declarations: tuple = ()
    text: str = field(default="", repr=False)

    def of_kind(self, kind: str) -> list:
        return [d for d in self.declarations if d.kind == kind]

    def functions(self) -> list[FunctionDecl]:
        return self.of_kind(FunctionDecl.kind)

    def account_structs(self) -> list[AccountStruct]:
        return self.of_kind(AccountStruct.kind)

    def find_struct(self, name: Optional[str]) -> Optional[AccountStruct]:
        if not name:
            return None
        for decl in self.declarations:
            if decl.kind == AccountStruct.kind and decl.name == name:
                return decl
        return None


@dataclass(frozen=True)
class ParseFailure:
    message: str
    line: int = 1
    column: int = 1


@dataclass(frozen=True)
class SourceUnit:
    """One input file and the outcome of building its model."""

    path: str
    raw_text: str = field(repr=False)
    model: Optional[StructuralModel] = None
    failure: Optional[ParseFailure] = None

    @property
    def parsed(self) -> bool:
        return self.model is not None


# ── Text helpers ────────────────────────────────────────────────────────────


def split_top_level(text: str, sep: str = ",") -> list[tuple[int, int]]:
    """Split ``text`` on ``sep`` outside brackets and generic angle brackets.

    Angle brackets only count outside ``()[]{}`` so comparisons inside
    attribute arguments do not unbalance the split. Returns (start, end)
    ranges.
    """
    ranges = []
    depth = 0
    angles = 0
    start = 0
    prev = ""
    for i, ch in enumerate(text):
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth = max(0, depth - 1)
        elif depth == 0 and ch == "<":
            angles += 1
        elif depth == 0 and ch == ">" and prev != "-" and angles:
            angles -= 1
        elif ch == sep and depth == 0 and angles == 0:
            ranges.append((start, i))
            start = i + 1
        prev = ch
    ranges.append((start, len(text)))
    return ranges


def _peel_type(text: str) -> str:
    """Strip references, lifetimes, ``mut`` and ``Box``/``Option`` wrappers."""
    t = " ".join(text.split())
    while True:
        before = t
        t = re.sub(r"^&\s*(?:'\w+\s+)?(?:mut\s+)?", "", t)
        t = re.sub(r"^(?:mut|dyn|impl)\s+", "", t)
        m = re.match(r"^(?:\w+\s*::\s*)*(?:Box|Option)\s*<(.*)>$", t)
        if m:
            t = m.group(1).strip()
        if t == before:
            return t


def _base_name(text: str) -> str:
    m = _TYPE_NAME_RE.match(text)
    return m.group(2) if m else text


def make_type_ref(text: str) -> TypeRef:
    raw = " ".join(text.split())
    base = _base_name(_peel_type(raw))
    return TypeRef(
        text=raw,
        base=base,
        generic_account=base in GENERIC_ACCOUNT_TYPES,
        program_handle=base in PROGRAM_HANDLE_TYPES,
    )


def _make_attribute(text: str, line: int) -> Attribute:
    inner = text[2:-1].strip() if text.startswith("#[") else text
    m = re.match(r"([\w:]+)\s*", inner)
    if not m:
        return Attribute(name="", args=inner, text=text, line=line)
    name = m.group(1)
    rest = inner[m.end():]
    if rest.startswith("(") and rest.endswith(")"):
        args = rest[1:-1]
    elif rest.startswith("="):
        args = rest[1:].strip()
    else:
        args = rest
    return Attribute(name=name, args=args, text=text, line=line)


class _SyntaxProblem(Exception):
    def __init__(self, message: str, offset: int):
        super().__init__(message)
        self.message = message
        self.offset = offset


class _BudgetExceeded(Exception):
    pass


def _is_ident(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def mask_source(text: str) -> tuple[str, str, list[tuple[int, str]]]:
    """Blank comments and literal contents while keeping every offset.

    Returns ``(code, skeleton, docs)``: ``code`` has comments blanked,
    ``skeleton`` additionally blanks string and char literal contents, and
    ``docs`` lists ``(offset, text)`` for each outer doc comment.
    """
    n = len(text)
    code = list(text)
    skel = list(text)
    docs = []

    def blank(buf, start, end):
        for k in range(start, end):
            if text[k] != "\n":
                buf[k] = " "

    i = 0
    while i < n:
        c = text[i]
        nxt = text[i + 1] if i + 1 < n else ""
        if c == "/" and nxt == "/":
            end = text.find("\n", i)
            if end == -1:
                end = n
            comment = text[i:end]
            if comment.startswith("///") and not comment.startswith("////"):
                docs.append((i, comment[3:].strip()))
            blank(code, i, end)
            blank(skel, i, end)
            i = end
            continue
        if c == "/" and nxt == "*":
            depth = 1
            j = i + 2
            while j < n and depth:
                if text.startswith("/*", j):
                    depth += 1
                    j += 2
                elif text.startswith("*/", j):
                    depth -= 1
                    j += 2
                else:
                    j += 1
            if depth:
                raise _SyntaxProblem("unterminated block comment", i)
            comment = text[i:j]
            if comment.startswith("/**") and not comment.startswith(("/***", "/**/")):
                docs.append((i, comment[3:-2].strip()))
            blank(code, i, j)
            blank(skel, i, j)
            i = j
            continue
        if c in "rb" and (i == 0 or not _is_ident(text[i - 1])):
            m = _RAW_STR_RE.match(text, i)
            if m:
                close = '"' + m.group(1)
                end = text.find(close, m.end())
                if end == -1:
                    raise _SyntaxProblem("unterminated raw string literal", i)
                blank(skel, m.end(), end)
                i = end + len(close)
                continue
        if c == '"':
            j = i + 1
            while j < n:
                if text[j] == "\\":
                    j += 2
                    continue
                if text[j] == '"':
                    break
                j += 1
            if j >= n:
                raise _SyntaxProblem("unterminated string literal", i)
            blank(skel, i + 1, j)
            i = j + 1
            continue
        if c == "'":
            end = _char_literal_end(text, i)
            if end is not None:
                blank(skel, i + 1, end)
                i = end + 1
                continue
        i += 1
    return "".join(code), "".join(skel), docs


def _char_literal_end(text: str, i: int) -> Optional[int]:
    """Offset of the closing quote of a char literal at ``i``, or None for a lifetime."""
    n = len(text)
    if i + 1 >= n:
        return None
    if text[i + 1] == "\\":
        j = i + 2
        if j < n and text[j] == "u" and j + 1 < n and text[j + 1] == "{":
            close = text.find("}", j)
            if close == -1:
                return None
            j = close + 1
        else:
            j += 1
            if j < n and text[j - 1] == "x":
                j += 2
        return j if j < n and text[j] == "'" else None
    if i + 2 < n and text[i + 2] == "'" and text[i + 1] != "'":
        return i + 2
    return None


# ── Builder ─────────────────────────────────────────────────────────────────


class ModelBuilder:
    """Builds a ``StructuralModel`` for a single file."""

    def __init__(
        self,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        max_declarations: int = DEFAULT_MAX_DECLARATIONS,
    ):
        self.max_file_bytes = max_file_bytes
        self.max_declarations = max_declarations

    def build(self, path: str, text: str) -> Union[StructuralModel, ParseFailure]:
        size = len(text.encode("utf-8", errors="replace"))
        if size > self.max_file_bytes:
            return ParseFailure(
                f"parse budget exceeded: {size} bytes (limit {self.max_file_bytes})"
            )
        try:
            return _FileParser(path, text, self.max_declarations).parse()
        except _SyntaxProblem as exc:
            line, column = _offset_position(text, exc.offset)
            return ParseFailure(exc.message, line, column)
        except _BudgetExceeded:
            return ParseFailure(
                f"parse budget exceeded: more than {self.max_declarations} declarations"
            )
        except Exception as exc:
            logger.warning("Model builder crashed on %s", path, exc_info=True)
            return ParseFailure(f"internal parser error: {type(exc).__name__}: {exc}")


def build_model(path: str, text: str, **limits) -> Union[StructuralModel, ParseFailure]:
    return ModelBuilder(**limits).build(path, text)


def _offset_position(text: str, offset: int) -> tuple[int, int]:
    line = text.count("\n", 0, offset) + 1
    last = text.rfind("\n", 0, offset)
    return line, offset - last


class _FileParser:
    def __init__(self, path: str, text: str, max_declarations: int):
        self.path = path
        self.text = text
        self.max_declarations = max_declarations
        self.code, self.skel, docs = mask_source(text)
        self.doc_offsets = [d[0] for d in docs]
        self.docs = docs
        self.line_starts = [0] + [m.end() for m in re.finditer("\n", text)]
        self.match = self._match_delimiters()
        self.declarations = []

    def parse(self) -> StructuralModel:
        self._scan_items(0, len(self.skel), (), False)
        return StructuralModel(self.path, tuple(self.declarations), self.text)

    # positions

    def _position(self, offset: int) -> tuple[int, int]:
        line = bisect.bisect_right(self.line_starts, offset)
        return line, offset - self.line_starts[line - 1] + 1

    def _match_delimiters(self) -> dict:
        pairs = {}
        stack = []
        for i, ch in enumerate(self.skel):
            if ch in "([{":
                stack.append((ch, i))
            elif ch in ")]}":
                if not stack or stack[-1][0] != _CLOSERS[ch]:
                    raise _SyntaxProblem(f"unexpected closing delimiter '{ch}'", i)
                pairs[stack.pop()[1]] = i
        if stack:
            ch, i = stack[-1]
            raise _SyntaxProblem(f"unclosed delimiter '{ch}'", i)
        return pairs

    def _add(self, decl) -> None:
        self.declarations.append(decl)
        if len(self.declarations) > self.max_declarations:
            raise _BudgetExceeded()

    # cursor helpers

    def _skip_ws(self, pos: int, end: int) -> int:
        while pos < end and self.skel[pos].isspace():
            pos += 1
        return pos

    def _word(self, pos: int, end: int) -> tuple[Optional[str], int]:
        pos = self._skip_ws(pos, end)
        m = _WORD_RE.match(self.skel, pos, end)
        if not m:
            return None, pos
        return m.group(0), m.end()

    def _skip_item(self, pos: int, end: int) -> int:
        """Advance past the current item: to after ``;`` or a block."""
        while pos < end:
            ch = self.skel[pos]
            if ch == ";":
                return pos + 1
            if ch == "{":
                return self.match[pos] + 1
            if ch in "([":
                pos = self.match[pos] + 1
                continue
            pos += 1
        return end

    def _skip_generics(self, pos: int, end: int) -> int:
        pos = self._skip_ws(pos, end)
        if pos >= end or self.skel[pos] != "<":
            return pos
        depth = 0
        while pos < end:
            ch = self.skel[pos]
            if ch in "([{":
                pos = self.match[pos] + 1
                continue
            if ch == "<":
                depth += 1
            elif ch == ">" and self.skel[pos - 1] != "-":
                depth -= 1
                if depth == 0:
                    return pos + 1
            pos += 1
        return pos

    def _find_body(self, pos: int, end: int) -> tuple[int, str]:
        """Find the next ``{``, ``(`` or ``;`` at this nesting level."""
        while pos < end:
            ch = self.skel[pos]
            if ch in "{;(":
                return pos, ch
            if ch == "[":
                pos = self.match[pos] + 1
                continue
            pos += 1
        return end, ""

    def _collect_attrs(self, spans: list, region_start: int, item_start: int) -> tuple:
        """Outer attributes plus the doc comments found before the item."""
        found = []
        for start, stop in spans:
            line, _ = self._position(start)
            found.append((start, _make_attribute(" ".join(self.code[start:stop].split()), line)))
        lo = bisect.bisect_left(self.doc_offsets, region_start)
        hi = bisect.bisect_left(self.doc_offsets, item_start)
        for offset, text in self.docs[lo:hi]:
            line, _ = self._position(offset)
            found.append((offset, Attribute("doc", text, "/// " + text, line)))
        found.sort(key=lambda pair: pair[0])
        return tuple(attr for _, attr in found)

    # item scanning

    def _scan_items(self, start: int, end: int, scope: tuple, program_mod: bool) -> None:
        pos = start
        pending = []
        region = start
        while True:
            pos = self._skip_ws(pos, end)
            if pos >= end:
                return
            ch = self.skel[pos]
            if ch == "#":
                nxt = self._skip_ws(pos + 1, end)
                if nxt < end and self.skel[nxt] == "!":
                    bracket = self._skip_ws(nxt + 1, end)
                    pos = self.match.get(bracket, bracket) + 1
                    region = pos
                    continue
                if nxt < end and self.skel[nxt] == "[":
                    close = self.match[nxt]
                    pending.append((pos, close + 1))
                    pos = close + 1
                    continue
                pos += 1
                continue
            if ch == ";":
                pos += 1
                pending, region = [], pos
                continue
            if ch == "{":
                pos = self.match[pos] + 1
                pending, region = [], pos
                continue

            word, after = self._word(pos, end)
            if word is None:
                pos = self._skip_item(pos, end)
                pending, region = [], pos
                continue

            if word == "pub":
                nxt = self._skip_ws(after, end)
                if nxt < end and self.skel[nxt] == "(":
                    after = self.match[nxt] + 1
                pos = after
                continue
            if word in _ITEM_QUALIFIERS:
                pos = after
                continue
            if word == "extern":
                nxt = self._skip_ws(after, end)
                if nxt < end and self.skel[nxt] == '"':
                    nxt = self.skel.index('"', nxt + 1) + 1
                following, _ = self._word(nxt, end)
                if following == "fn":
                    pos = nxt
                    continue
                pos = self._skip_item(nxt, end)
                pending, region = [], pos
                continue
            if word == "const":
                following, _ = self._word(after, end)
                if following in ("fn", "unsafe", "async", "extern"):
                    pos = after
                    continue

            attrs = self._collect_attrs(pending, region, pos)
            if word == "fn":
                pos = self._parse_fn(after, end, attrs, scope, program_mod)
            elif word in ("struct", "union"):
                pos = self._parse_struct(after, end, attrs)
            elif word == "enum":
                pos = self._parse_enum(after, end, attrs)
            elif word in ("const", "static"):
                pos = self._parse_const(after, end)
            elif word == "mod":
                pos = self._parse_mod(after, end, attrs, scope)
            elif word in ("impl", "trait"):
                pos = self._parse_impl(after, end, scope, word)
            else:
                # use / type / macro invocations / macro_rules! / anything else
                pos = self._skip_item(after, end)
            pending, region = [], pos

    def _expect_name(self, pos: int, end: int, keyword: str) -> tuple[str, int, int]:
        name, after = self._word(pos, end)
        if name is None:
            raise _SyntaxProblem(f"expected identifier after '{keyword}'", self._skip_ws(pos, end))
        return name.replace("r#", ""), after - len(name), after

    def _parse_fn(self, pos, end, attrs, scope, program_mod) -> int:
        name, name_at, pos = self._expect_name(pos, end, "fn")
        pos = self._skip_generics(pos, end)
        pos = self._skip_ws(pos, end)
        if pos >= end or self.skel[pos] != "(":
            raise _SyntaxProblem(f"expected parameter list for function '{name}'", pos)
        close = self.match[pos]
        params = self._parse_params(pos + 1, close)
        body_at, kind = self._find_fn_body(close + 1, end)
        line, column = self._position(name_at)
        if kind == "{":
            body_end = self.match[body_at]
            body_line, body_column = self._position(body_at + 1)
            body_text = self.code[body_at + 1 : body_end]
            body_skel = self.skel[body_at + 1 : body_end]
            after = body_end + 1
        else:
            body_line, body_column = line, column
            body_text = body_skel = ""
            after = body_at + 1
        self._add(FunctionDecl(
            name=name,
            parameters=params,
            body_text=body_text,
            body_skeleton=body_skel,
            attributes=attrs,
            line=line,
            column=column,
            body_line=body_line,
            body_column=body_column,
            scope=scope,
            program_entry=program_mod,
        ))
        return after

    def _find_fn_body(self, pos: int, end: int) -> tuple[int, str]:
        while pos < end:
            ch = self.skel[pos]
            if ch in "{;":
                return pos, ch
            if ch in "([":
                pos = self.match[pos] + 1
                continue
            pos += 1
        raise _SyntaxProblem("expected function body", end)

    def _parse_params(self, start: int, stop: int) -> tuple:
        params = []
        skel = self.skel[start:stop]
        for a, b in split_top_level(skel):
            part_skel = skel[a:b]
            part = self.code[start + a : start + b]
            # strip parameter attributes
            while part_skel.lstrip().startswith("#["):
                offset = len(part_skel) - len(part_skel.lstrip())
                close = self.match[start + a + offset + 1] - (start + a)
                part_skel = part_skel[close + 1 :]
                part = part[close + 1 :]
                a = a + close + 1
            text = part.strip()
            if not text:
                continue
            if re.fullmatch(r"&?\s*(?:'\w+\s+)?(?:mut\s+)?self", text):
                params.append(Param("self", make_type_ref("Self")))
                continue
            colon = _top_level_colon(part_skel)
            if colon is None:
                params.append(Param(text, make_type_ref("")))
                continue
            pattern = part[:colon].strip()
            names = re.findall(r"\w+", pattern)
            names = [n for n in names if n not in ("mut", "ref")]
            name = names[-1] if len(names) == 1 else pattern
            params.append(Param(name, make_type_ref(part[colon + 1 :])))
        return tuple(params)

    def _parse_struct(self, pos, end, attrs) -> int:
        name, name_at, pos = self._expect_name(pos, end, "struct")
        pos = self._skip_generics(pos, end)
        body_at, kind = self._find_body(pos, end)
        if kind == "{":
            close = self.match[body_at]
            fields = self._parse_fields(body_at + 1, close)
            after = close + 1
        elif kind == "(":
            close = self.match[body_at]
            fields = self._parse_fields(body_at + 1, close, tuple_struct=True)
            after = self._skip_item(close + 1, end)
        else:
            fields = ()
            after = body_at + 1
        role = _struct_role(attrs)
        if role is not None:
            line, column = self._position(name_at)
            self._add(AccountStruct(
                name=name,
                fields=fields,
                attributes=attrs,
                role=role,
                line=line,
                column=column,
            ))
        return after

    def _parse_fields(self, start: int, stop: int, tuple_struct: bool = False) -> tuple:
        fields = []
        skel = self.skel[start:stop]
        for index, (a, b) in enumerate(split_top_level(skel)):
            seg_start, seg_end = start + a, start + b
            pos = seg_start
            spans = []
            while True:
                pos = self._skip_ws(pos, seg_end)
                if pos < seg_end and self.skel[pos] == "#":
                    bracket = self._skip_ws(pos + 1, seg_end)
                    if bracket < seg_end and self.skel[bracket] == "[":
                        close = self.match[bracket]
                        spans.append((pos, close + 1))
                        pos = close + 1
                        continue
                break
            word, after = self._word(pos, seg_end)
            if word == "pub":
                nxt = self._skip_ws(after, seg_end)
                if nxt < seg_end and self.skel[nxt] == "(":
                    after = self.match[nxt] + 1
                pos = self._skip_ws(after, seg_end)
            if pos >= seg_end:
                continue
            attrs = self._collect_attrs(spans, seg_start, pos)
            if tuple_struct:
                type_text = self.code[pos:seg_end]
                line, column = self._position(pos)
                fields.append(FieldDecl(str(index), make_type_ref(type_text), attrs, line, column))
                continue
            name, after = self._word(pos, seg_end)
            colon = self._skip_ws(after, seg_end)
            if name is None or colon >= seg_end or self.skel[colon] != ":":
                raise _SyntaxProblem("expected field declaration", pos)
            line, column = self._position(pos)
            fields.append(FieldDecl(
                name=name.replace("r#", ""),
                type_ref=make_type_ref(self.code[colon + 1 : seg_end]),
                attributes=attrs,
                line=line,
                column=column,
            ))
        return tuple(fields)

    def _parse_enum(self, pos, end, attrs) -> int:
        name, name_at, pos = self._expect_name(pos, end, "enum")
        pos = self._skip_generics(pos, end)
        body_at, kind = self._find_body(pos, end)
        if kind != "{":
            raise _SyntaxProblem(f"expected body for enum '{name}'", body_at)
        close = self.match[body_at]
        if any(a.name in ("error_code", "error") for a in attrs):
            variants = []
            skel = self.skel[body_at + 1 : close]
            for a, b in split_top_level(skel):
                seg = re.sub(r"#\s*\[[^\]]*\]", " ", skel[a:b])
                m = re.search(r"\w+", seg)
                if m:
                    variants.append(m.group(0))
            line, column = self._position(name_at)
            self._add(ErrorEnum(name, tuple(variants), attrs, line, column))
        return close + 1

    def _parse_const(self, pos, end) -> int:
        name, after = self._word(pos, end)
        if name == "mut":
            name, after = self._word(after, end)
        if name is None:
            underscore = self._skip_ws(pos, end)
            if underscore < end and self.skel[underscore] == "_":
                name, after = "_", underscore + 1
            else:
                raise _SyntaxProblem("expected identifier after 'const'", underscore)
        name_at = after - len(name)
        stop = self._skip_item(after, end)
        semi = stop - 1 if self.skel[stop - 1] == ";" else stop
        segment = self.skel[after:semi]
        eq = _top_level_char(segment, "=")
        if eq is None:
            return stop
        colon = _top_level_colon(segment[:eq])
        type_text = self.code[after + colon + 1 : after + eq] if colon is not None else ""
        lit_start = after + eq + 1
        while lit_start < semi and self.skel[lit_start].isspace():
            lit_start += 1
        line, column = self._position(name_at)
        lit_line, lit_column = self._position(lit_start)
        self._add(ConstDecl(
            name=name,
            type_ref=make_type_ref(type_text),
            literal_text=self.code[lit_start:semi].rstrip(),
            literal_skeleton=self.skel[lit_start:semi].rstrip(),
            line=line,
            column=column,
            literal_line=lit_line,
            literal_column=lit_column,
        ))
        return stop

    def _parse_mod(self, pos, end, attrs, scope) -> int:
        name, _, pos = self._expect_name(pos, end, "mod")
        body_at, kind = self._find_body(pos, end)
        if kind != "{":
            return body_at + 1
        close = self.match[body_at]
        program = any(a.name == "program" for a in attrs)
        self._scan_items(body_at + 1, close, scope + (name,), program)
        return close + 1

    def _parse_impl(self, pos, end, scope, keyword) -> int:
        header_end, kind = self._find_body(pos, end)
        while kind == "(":
            header_end, kind = self._find_body(self.match[header_end] + 1, end)
        if kind != "{":
            return header_end + 1
        header = self.skel[pos:header_end]
        target = re.findall(r"\bfor\s+(\w+)", header)
        if not target:
            word, _ = self._word(self._skip_generics(pos, header_end), header_end)
            target = [word] if word else []
        label = f"{keyword} {target[-1]}" if target else keyword
        close = self.match[header_end]
        self._scan_items(header_end + 1, close, scope + (label,), False)
        return close + 1


def _struct_role(attrs: tuple) -> Optional[str]:
    for attr in attrs:
        if attr.name == "derive" and "Accounts" in [t.split("::")[-1] for t in attr.arg_tokens]:
            return "accounts"
    for attr in attrs:
        if attr.name in ("account", "zero_copy"):
            return "data"
    return None


def _top_level_colon(text: str) -> Optional[int]:
    depth = 0
    angles = 0
    for i, ch in enumerate(text):
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif depth == 0 and ch == "<":
            angles += 1
        elif depth == 0 and ch == ">" and angles:
            angles -= 1
        elif ch == ":" and depth == 0 and angles == 0:
            if text[i + 1 : i + 2] == ":" or (i and text[i - 1] == ":"):
                continue
            return i
    return None


def _top_level_char(text: str, target: str) -> Optional[int]:
    depth = 0
    for i, ch in enumerate(text):
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == target and depth == 0:
            if target == "=" and (text[i + 1 : i + 2] in ("=", ">") or (i and text[i - 1] in "=!<>")):
                continue
            return i
    return None
