"""``{{Name}}`` placeholder scanning shared by the store and the builder."""

from __future__ import annotations

import re
from dataclasses import dataclass

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_IDENTIFIER_RE = re.compile(r"\s*[A-Za-z_][A-Za-z0-9_]*\s*")

OPEN = "{{"
CLOSE = "}}"


@dataclass(frozen=True)
class DelimiterProblem:
    offset: int
    code: str
    message: str
    placeholder: str | None = None


def placeholder_names(body: str) -> list[str]:
    """Return placeholder names in order of first appearance."""

    seen: dict[str, None] = {}
    for match in PLACEHOLDER_RE.finditer(body):
        seen.setdefault(match.group(1), None)
    return list(seen)


def scan_delimiters(body: str) -> list[DelimiterProblem]:
    """Report nested, unterminated and malformed ``{{ }}`` spans in ``body``."""

    problems: list[DelimiterProblem] = []
    position = 0
    while True:
        start = body.find(OPEN, position)
        if start < 0:
            return problems
        end = body.find(CLOSE, start + len(OPEN))
        if end < 0:
            problems.append(
                DelimiterProblem(start, "unterminated_placeholder", f"Unterminated '{{{{' at offset {start}")
            )
            return problems
        inner = body[start + len(OPEN) : end]
        if OPEN in inner:
            problems.append(
                DelimiterProblem(start, "nested_placeholder", f"Nested placeholder at offset {start}")
            )
        elif not _IDENTIFIER_RE.fullmatch(inner):
            problems.append(
                DelimiterProblem(
                    start,
                    "malformed_placeholder",
                    f"Placeholder '{{{{{inner}}}}}' at offset {start} is not a valid name",
                )
            )
        position = end + len(CLOSE)


EXPANDABLE = "placeholder_in_expandable_string"
QUOTED = "placeholder_in_quoted_string"

_SINGLE_QUOTE_CHARS = "'‘’‚‛"
_DOUBLE_QUOTE_CHARS = "\"“”„"
_HERE_STRING_OPEN = re.compile(r"@(['‘’‚‛\"“”„])[ \t]*\r?\n")
_HERE_STRING_CLOSE = {
    True: re.compile(r"\n[ \t]*[\"“”„]@"),
    False: re.compile(r"\n[ \t]*['‘’‚‛]@"),
}


def _flag(match: re.Match[str], code: str, problems: list[DelimiterProblem]) -> int:
    where = "an expandable" if code == EXPANDABLE else "a quoted"
    problems.append(
        DelimiterProblem(
            match.start(),
            code,
            f"Placeholder '{{{{{match.group(1)}}}}}' at offset {match.start()} is inside "
            f"{where} string",
            match.group(1),
        )
    )
    return match.end()


def _scan_string(
    body: str,
    position: int,
    end: int,
    problems: list[DelimiterProblem],
    *,
    expandable: bool,
    quotes: str = "",
) -> int:
    """Flag placeholders from ``position`` until a closing quote in ``quotes``
    (or ``end``); return the offset after the string."""

    depth = 0
    while position < end:
        char = body[position]
        match = PLACEHOLDER_RE.match(body, position)
        if match:
            position = _flag(match, EXPANDABLE if expandable else QUOTED, problems)
            continue
        if expandable and char == "`":
            position += 2
            continue
        if expandable and body.startswith("$(", position):
            depth += 1
            position += 2
            continue
        if depth and char == "(":
            depth += 1
        elif depth and char == ")":
            depth -= 1
        elif not depth and char in quotes:
            # A doubled quote is an escaped quote.
            if position + 1 < end and body[position + 1] in quotes:
                position += 2
                continue
            return position + 1
        position += 1
    return position


def quoted_placeholders(body: str) -> list[DelimiterProblem]:
    """Report placeholders that sit inside PowerShell string literals.

    Substituted values are complete single-quoted literals, so a placeholder
    already inside quotes would let its value close the surrounding string.
    Double-quoted strings and ``@" "@`` here-strings are reported as
    :data:`EXPANDABLE` since PowerShell also runs ``$( )`` found there.
    """

    problems: list[DelimiterProblem] = []
    position = 0
    length = len(body)
    while position < length:
        char = body[position]
        if char == "#" or body.startswith("<#", position):
            closer = "#>" if char == "<" else "\n"
            found = body.find(closer, position + 2 if char == "<" else position)
            position = length if found < 0 else found + len(closer)
            continue
        here = _HERE_STRING_OPEN.match(body, position)
        if here:
            expandable = here.group(1) in _DOUBLE_QUOTE_CHARS
            closing = _HERE_STRING_CLOSE[expandable].search(body, here.end() - 1)
            stop = closing.start() if closing else length
            _scan_string(body, here.end(), stop, problems, expandable=expandable)
            position = closing.end() if closing else length
            continue
        if char == "`":
            position += 2
        elif char in _SINGLE_QUOTE_CHARS:
            position = _scan_string(
                body, position + 1, length, problems, expandable=False, quotes=_SINGLE_QUOTE_CHARS
            )
        elif char in _DOUBLE_QUOTE_CHARS:
            position = _scan_string(
                body, position + 1, length, problems, expandable=True, quotes=_DOUBLE_QUOTE_CHARS
            )
        else:
            position += 1
    return problems


__all__ = [
    "DelimiterProblem",
    "EXPANDABLE",
    "QUOTED",
    "quoted_placeholders",
    "PLACEHOLDER_RE",
    "placeholder_names",
    "scan_delimiters",
]
