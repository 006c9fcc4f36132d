"""
Initializer list parser.

Parses brace-enclosed C initializers, positional or designated:

    { 1, 2, 3 }
    { .x = 10, .y = 20 }
    { [0] = 1, [5] = 2 }
    { .pt = { .x = 1 }, .tags = { "a", "b" } }

Scalars are kept as compact source text (``1 + 2`` -> ``"1+2"``);
nested braces become nested InitLists.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from cguard.core.tokens import TokenKind, TokenList
from cguard.errors import ParseError, require_tokens


_OPEN = (TokenKind.LPAREN, TokenKind.LBRACKET, TokenKind.LBRACE)
_CLOSE = (TokenKind.RPAREN, TokenKind.RBRACKET, TokenKind.RBRACE)


@dataclass(frozen=True)
class InitValue:
    """A scalar expression (text) or a nested list (compound)"""
    scalar: Optional[str] = None
    compound: Optional["InitList"] = None

    @property
    def is_compound(self) -> bool:
        return self.compound is not None

    def to_python(self):
        return self.compound.to_python() if self.is_compound else self.scalar


@dataclass(frozen=True)
class InitItem:
    """One entry: optional designator (``.x``, ``[3]``, ``.a.b``) and a value"""
    designator: Optional[str]
    value: InitValue


class InitList(list):
    """Items of one brace level, in source order"""

    def designators(self) -> List[Optional[str]]:
        return [item.designator for item in self]

    def to_python(self) -> Union[list, dict]:
        """Plain Python view: a dict when every item is designated"""
        if self and all(item.designator for item in self):
            return {item.designator: item.value.to_python() for item in self}
        return [item.value.to_python() for item in self]


def parse_initializer(
    tokens: TokenList, start_idx: int, end_idx: Optional[int] = None
) -> Tuple[InitList, int]:
    """Parse the initializer whose ``{`` is at ``start_idx``.

    Returns the list and the number of tokens consumed, both braces
    included.
    """
    require_tokens(tokens, "parse_initializer")
    end_idx = len(tokens) if end_idx is None else min(end_idx, len(tokens))
    if start_idx >= end_idx or tokens[start_idx].kind is not TokenKind.LBRACE:
        raise ParseError("initializer must start with '{'")

    items = InitList()
    i = start_idx + 1
    while True:
        i = _skip_trivia(tokens, i, end_idx)
        tok = tokens[i]
        if tok.kind is TokenKind.RBRACE:
            return items, i + 1 - start_idx

        designator = None
        if tok.kind is TokenKind.LBRACKET or tok.value == ".":
            designator, i = _parse_designator(tokens, i, end_idx)

        i = _skip_trivia(tokens, i, end_idx)
        if tokens[i].kind is TokenKind.LBRACE:
            nested, consumed = parse_initializer(tokens, i, end_idx)
            value = InitValue(compound=nested)
            i += consumed
        else:
            value, i = _parse_scalar(tokens, i, end_idx)
        items.append(InitItem(designator, value))

        i = _skip_trivia(tokens, i, end_idx)
        if tokens[i].kind is TokenKind.COMMA:
            i += 1
        elif tokens[i].kind is not TokenKind.RBRACE:
            raise ParseError(f"expected ',' or '}}' in initializer, got {tokens[i].value!r}",
                             pos=tokens[i].pos)


def _skip_trivia(tokens: TokenList, i: int, end: int) -> int:
    nxt = tokens.next_significant(i, end)
    if nxt is None:
        raise ParseError("unterminated initializer list")
    return nxt


def _parse_designator(tokens: TokenList, i: int, end: int) -> Tuple[str, int]:
    """Consume ``.a[2].b =`` and return (".a[2].b", index after '=')"""
    start = i
    while True:
        tok = tokens[i]
        if tok.value == ".":
            name = tokens.next_significant(i + 1, end)
            if name is None or tokens[name].kind is not TokenKind.IDENTIFIER:
                raise ParseError("expected field name after '.'", pos=tok.pos)
            i = name + 1
        elif tok.kind is TokenKind.LBRACKET:
            close = tokens.find_matching(i, end)
            if close is None:
                raise ParseError("unterminated array designator", pos=tok.pos)
            i = close + 1
        elif tok.value == "=":
            return tokens.compact_text(start, i), i + 1
        elif not tok.is_trivia:
            raise ParseError(f"expected '=' after designator, got {tok.value!r}", pos=tok.pos)
        else:
            i += 1
        if i >= end:
            raise ParseError("unterminated designator")


def _parse_scalar(tokens: TokenList, i: int, end: int) -> Tuple[InitValue, int]:
    """Consume an expression up to the next top-level ',' or '}'"""
    start = i
    depth = 0
    while i < end:
        kind = tokens[i].kind
        if depth == 0 and kind in (TokenKind.COMMA, TokenKind.RBRACE):
            break
        if kind in _OPEN:
            depth += 1
        elif kind in _CLOSE:
            depth -= 1
        i += 1
    else:
        raise ParseError("unterminated initializer value")

    text = tokens.compact_text(start, i)
    if not text:
        raise ParseError("empty initializer value", pos=tokens[start].pos)
    return InitValue(scalar=text), i
