"""
PLU-004: Unchecked remaining_accounts

``ctx.remaining_accounts`` bypasses every constraint Anchor generates for
the accounts struct. Any account can be passed there, so a handler that
reads it must check ownership or identity of the elements itself.

The body is walked statement by statement. Names bound from the collection
(loop variables, ``let`` bindings and whatever is derived from them) are
tracked; a check only counts when it names one of them and comes before
that name is used.
"""

import re
from typing import Optional

from pluton.detectors.base import HIGH, Category, Detector
from pluton.model import FunctionDecl

COLLECTION = "remaining_accounts"

REMAINING_RE = re.compile(rf"\b{COLLECTION}\b")

ELEMENT_CHECK_RE = re.compile(
    r"\.\s*(?:owner|key)\b(?:\s*\(\s*\))?\s*(?:==|!=)"
    r"|(?:==|!=)\s*[&*]*[\w.:]+\.\s*(?:owner|key)\b"
    r"|\brequire_keys_(?:eq|neq)!"
    r"|\b\w*(?:check|verify|validate|assert)(?!ed)\w*\s*!?\s*\("
    r"|\bAccount\s*::\s*<[^>]*>\s*::\s*try_from\b"
)

_CLAUSE_RE = re.compile(r"[^;{}]+")
_FOR_RE = re.compile(r"^\s*for\s+(.+?)\s+in\b(.*)$", re.S)
_LET_RE = re.compile(r"^\s*(?:(?:if|while)\s+)?let\s+([^=:]+?)\s*(?::[^=]*)?=(?!=)(.*)$", re.S)
_PATTERN_NAME_RE = re.compile(r"\b[a-z_]\w*\b")


def _pattern_names(pattern: str) -> set:
    return set(_PATTERN_NAME_RE.findall(pattern)) - {"mut", "ref", "_"}


def _mentions(clause: str, name: str) -> bool:
    if name == COLLECTION:
        return bool(REMAINING_RE.search(clause))
    return bool(re.search(rf"(?<![\w.]){re.escape(name)}\b", clause))


class UncheckedRemainingAccountsDetector(Detector):
    id = "PLU-004"
    category = Category.UNCHECKED_REMAINING_ACCOUNTS
    name = "Unchecked remaining_accounts"
    default_severity = HIGH
    applies_to = frozenset({FunctionDecl.kind})
    description = "Handler reads remaining_accounts without validating the elements."
    remediation = (
        "Check each remaining account's owner and key before use "
        "(require_keys_eq!(acc.owner, expected::ID)), or deserialize with "
        "Account::<T>::try_from, which checks owner and discriminator."
    )

    def check(self, declaration, model, context):
        skeleton = declaration.body_skeleton
        access = REMAINING_RE.search(skeleton)
        if access is None or self._first_unchecked_use(skeleton) is None:
            return []
        line, column = declaration.position(access.start())
        return [self._finding(
            model, line, column,
            f"'{declaration.name}' reads remaining_accounts without an ownership "
            f"or identity check",
        )]

    @staticmethod
    def _first_unchecked_use(skeleton: str) -> Optional[int]:
        """Offset of the first statement using an element before it is checked."""
        origins = {COLLECTION: set()}
        checked = set()

        def is_checked(name, seen=()):
            if name in checked:
                return True
            sources = origins.get(name, set()) - {name} - set(seen)
            return bool(sources) and all(is_checked(s, seen + (name,)) for s in sources)

        for m in _CLAUSE_RE.finditer(skeleton):
            clause = m.group(0)
            binding = _FOR_RE.match(clause) or _LET_RE.match(clause)
            if binding:
                bound, source = _pattern_names(binding.group(1)), binding.group(2)
            else:
                bound, source = set(), clause
            named = {n for n in origins if _mentions(source, n)}

            if ELEMENT_CHECK_RE.search(clause) and named:
                checked |= named
                for name in bound:
                    origins[name] = named
                    checked.add(name)
                continue
            if binding:
                for name in bound:
                    if named:
                        origins[name] = named
                    else:
                        origins.pop(name, None)
                        checked.discard(name)
                continue
            if any(not is_checked(n) for n in named):
                return m.start()
        return None
