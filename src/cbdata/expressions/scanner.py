"""Character-level scanning of expression text.

Every detector in the evaluator works on the raw (sub-)expression string and
only reacts to characters at the *top level*: paren depth 0 and outside a
quoted literal.  The helpers here compute that annotation and split on it.

Annotations are recomputed for each substring; nothing is cached.
"""

from __future__ import annotations

import re

from cbdata.expressions.errors import MismatchedQuote

QUOTE = '"'
OPERATORS = "+-*/"
PLACEHOLDER = "%d"

_MANTISSA_RE = re.compile(r"\d+\.?\d*|\.\d+")


def quote_mask(text: str) -> list[bool]:
    """Flag each character that lies inside a quoted literal.

    Quote characters pair strictly in order of appearance (1st with 2nd, 3rd
    with 4th, ...).  Both delimiters of a pair are flagged.

    Raises:
        MismatchedQuote: If the text holds an odd number of quotes.
    """
    quotes = [i for i, ch in enumerate(text) if ch == QUOTE]
    if len(quotes) % 2:
        raise MismatchedQuote(
            "Mismatched string delimiters", expression=text, position=quotes[-1]
        )
    mask = [False] * len(text)
    for open_idx, close_idx in zip(quotes[::2], quotes[1::2]):
        for i in range(open_idx, close_idx + 1):
            mask[i] = True
    return mask


def scan_depth(text: str) -> tuple[list[int], list[bool]]:
    """Return the paren depth and quote flag at every character.

    ``depth[i]`` is the number of ``(`` minus ``)`` in ``text[: i + 1]``,
    counting only parens outside quoted literals.

    Returns:
        Tuple ``(depth, quoted)`` of lists the same length as *text*.
    """
    quoted = quote_mask(text)
    depth: list[int] = []
    level = 0
    for ch, in_quote in zip(text, quoted):
        if not in_quote:
            if ch == "(":
                level += 1
            elif ch == ")":
                level -= 1
        depth.append(level)
    return depth, quoted


def top_level_positions(text: str, chars: str) -> list[int]:
    """Positions of any character in *chars* at depth 0 outside quotes."""
    depth, quoted = scan_depth(text)
    return [
        i
        for i, ch in enumerate(text)
        if ch in chars and depth[i] == 0 and not quoted[i]
    ]


def split_top_level(text: str, delimiter: str) -> list[str]:
    """Split *text* on top-level occurrences of *delimiter*.

    Content around the delimiters is preserved verbatim, including empty
    pieces, so ``len(result) == number of top-level delimiters + 1``.
    """
    pieces: list[str] = []
    start = 0
    for pos in top_level_positions(text, delimiter):
        pieces.append(text[start:pos])
        start = pos + 1
    pieces.append(text[start:])
    return pieces


def has_unquoted(text: str, chars: str) -> bool:
    """True if any character of *chars* occurs outside quoted literals."""
    quoted = quote_mask(text)
    return any(ch in chars and not quoted[i] for i, ch in enumerate(text))


def _previous_char(text: str, pos: int) -> str | None:
    for i in range(pos - 1, -1, -1):
        if not text[i].isspace():
            return text[i]
    return None


def _is_exponent_sign(text: str, pos: int) -> bool:
    """True for the sign in a float literal such as ``1.5e-3``."""
    if text[pos] not in "+-" or pos < 2 or text[pos - 1] not in "eE":
        return False
    if pos + 1 >= len(text) or not text[pos + 1].isdigit():
        return False
    start = pos - 1
    while start > 0 and (text[start - 1].isdigit() or text[start - 1] == "."):
        start -= 1
    if not _MANTISSA_RE.fullmatch(text[start : pos - 1]):
        return False
    return start == 0 or text[start - 1] in OPERATORS or text[start - 1].isspace()


def binary_operator_positions(text: str) -> list[int]:
    """Top-level positions of binary arithmetic operators.

    Signs in unary position (start of text or right after another operator)
    and exponent signs of float literals are excluded.
    """
    positions: list[int] = []
    for pos in top_level_positions(text, OPERATORS):
        if text[pos] in "+-":
            prev = _previous_char(text, pos)
            if prev is None or prev in OPERATORS:
                continue
            if _is_exponent_sign(text, pos):
                continue
        positions.append(pos)
    return positions


def find_operator_split(text: str) -> int | None:
    """Position of the operator a binary expression is split on, or None.

    Operators group strictly left to right with no precedence between
    ``+ -`` and ``* /``: the split is the last top-level binary operator, so
    ``2+3*4`` splits as ``(2+3) * 4``.
    """
    positions = binary_operator_positions(text)
    return positions[-1] if positions else None


def placeholder_positions(text: str) -> list[int]:
    """Start positions of ``%d`` placeholders outside quoted literals."""
    quoted = quote_mask(text)
    return [
        m.start()
        for m in re.finditer(re.escape(PLACEHOLDER), text)
        if not quoted[m.start()]
    ]


def count_placeholders(text: str) -> int:
    """Number of ``%d`` placeholders outside quoted literals."""
    return len(placeholder_positions(text))


def strip_quotes(text: str) -> str:
    """Trim *text* and drop one pair of surrounding double quotes, if any."""
    clean = text.strip()
    if len(clean) >= 2 and clean[0] == QUOTE and clean[-1] == QUOTE:
        return clean[1:-1]
    return clean


def remove_unquoted_spaces(text: str) -> str:
    """Drop whitespace outside quoted literals."""
    quoted = quote_mask(text)
    return "".join(
        ch for i, ch in enumerate(text) if quoted[i] or not ch.isspace()
    )
