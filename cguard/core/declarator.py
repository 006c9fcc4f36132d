"""
Declarator parser (spiral rule).

Reads a C declaration such as ``int *(*f)(int)`` into the declared
identifier plus a chain of type constructors, outermost first:

    f: PTR -> FUNC("int") -> PTR -> BASE("int")

Starting at the identifier, array and function suffixes on the right are
consumed first (they bind tighter), then pointers on the left. When the
walk reaches a grouping parenthesis it steps outside the group and
repeats. Whatever remains on the far left is the base type.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from cguard.core._lexer import tokenize
from cguard.core.tokens import TAG_KEYWORDS, TYPE_QUALIFIERS, TokenKind, TokenList
from cguard.errors import ParseError, require_tokens


class DeclKind(Enum):
    """Type constructors in a declarator chain"""
    BASE = "base"
    PTR = "pointer"
    ARRAY = "array"
    FUNC = "function"


@dataclass(frozen=True)
class DeclType:
    """One link of a declarator chain.

    ``text`` holds the base type (BASE), the size expression (ARRAY, None
    when omitted) or the raw parameter text (FUNC).
    """
    kind: DeclKind
    text: Optional[str] = None
    qualifiers: Tuple[str, ...] = ()

    @classmethod
    def base(cls, text: str) -> "DeclType":
        return cls(DeclKind.BASE, text)

    @classmethod
    def pointer(cls, qualifiers=()) -> "DeclType":
        return cls(DeclKind.PTR, None, tuple(qualifiers))

    @classmethod
    def array(cls, size: Optional[str]) -> "DeclType":
        return cls(DeclKind.ARRAY, size)

    @classmethod
    def function(cls, args: str) -> "DeclType":
        return cls(DeclKind.FUNC, args)

    def describe(self) -> str:
        if self.kind is DeclKind.PTR:
            quals = " ".join(self.qualifiers)
            return f"{quals} pointer to" if quals else "pointer to"
        if self.kind is DeclKind.ARRAY:
            return f"array[{self.text}] of" if self.text else "array of"
        if self.kind is DeclKind.FUNC:
            return f"function({self.text}) returning"
        return self.text

    def to_dict(self) -> dict:
        data = {"kind": self.kind.name}
        if self.kind is DeclKind.BASE:
            data["type"] = self.text
        elif self.kind is DeclKind.ARRAY:
            data["size"] = self.text
        elif self.kind is DeclKind.FUNC:
            data["args"] = self.text
        if self.qualifiers:
            data["qualifiers"] = list(self.qualifiers)
        return data


@dataclass(frozen=True)
class DeclInfo:
    """A declared identifier and its type chain (outer -> inner)"""
    identifier: str
    chain: Tuple[DeclType, ...] = field(default_factory=tuple)

    @property
    def base(self) -> DeclType:
        return self.chain[-1]

    @property
    def kinds(self) -> List[DeclKind]:
        return [t.kind for t in self.chain]

    def is_function(self) -> bool:
        return self.chain[0].kind is DeclKind.FUNC

    def describe(self) -> str:
        """English reading, e.g. 'a: array[10] of struct S'"""
        return f"{self.identifier}: " + " ".join(t.describe() for t in self.chain)

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "chain": [t.to_dict() for t in self.chain],
        }


# Keyword groups whose parenthesised operand is part of the base type
_TYPE_OPERATORS = frozenset({
    "__attribute__", "__declspec", "typeof", "__typeof__", "_Alignas", "alignas", "_Atomic",
})
_STOPPERS = frozenset({"=", ":", ",", ";"})
_GROUPING_FOLLOWERS = frozenset({"*", "^", "("})


def parse_declaration(tokens: TokenList, start: int = 0, end: Optional[int] = None) -> DeclInfo:
    """Parse the declaration in tokens[start:end] with the spiral rule"""
    require_tokens(tokens, "parse_declaration")
    end = len(tokens) if end is None else min(end, len(tokens))
    if not 0 <= start <= end:
        raise ParseError(f"invalid token range [{start}, {end})")

    pivot = _find_identifier(tokens, start, end)
    chain: List[DeclType] = []
    left, right = pivot, pivot + 1

    while True:
        right = _consume_suffixes(tokens, right, end, chain)
        left = _consume_pointers(tokens, left, start, chain)

        lp = tokens.prev_significant(left, start)
        rp = tokens.next_significant(right, end)
        left_open = lp is not None and tokens[lp].kind is TokenKind.LPAREN
        right_close = rp is not None and tokens[rp].kind is TokenKind.RPAREN
        if left_open and right_close:
            left, right = lp, rp + 1
            continue
        if left_open or right_close:
            pos = tokens[lp if left_open else rp].pos
            raise ParseError("unbalanced grouping parenthesis in declarator", pos=pos)
        break

    base = tokens.compact_text(start, left) or "int"
    chain.append(DeclType.base(base))
    return DeclInfo(tokens[pivot].value, tuple(chain))


def parse_decl(text: str) -> DeclInfo:
    """Tokenize and parse a declaration string"""
    return parse_declaration(tokenize(text))


def _find_identifier(tokens: TokenList, start: int, end: int) -> int:
    """Locate the declared name: the last non-keyword identifier before the
    first array suffix, argument list or initializer."""
    candidate = None
    i = tokens.next_significant(start, end)
    while i is not None:
        tok = tokens[i]
        if tok.kind in TAG_KEYWORDS:
            i = _skip_tag(tokens, i, end)
            continue
        if tok.value in _TYPE_OPERATORS:
            nxt = tokens.next_significant(i + 1, end)
            if nxt is not None and tokens[nxt].kind is TokenKind.LPAREN:
                close = tokens.find_matching(nxt, end)
                if close is None:
                    raise ParseError(f"unterminated {tok.value}(...)", pos=tok.pos)
                i = tokens.next_significant(close + 1, end)
                continue
        if tok.kind is TokenKind.LPAREN:
            nxt = tokens.next_significant(i + 1, end)
            follower = tokens.value(nxt)
            if candidate is not None and follower not in _GROUPING_FOLLOWERS:
                break
        elif tok.kind in (TokenKind.LBRACKET, TokenKind.LBRACE) or tok.value in _STOPPERS:
            break
        elif tok.is_name():
            candidate = i
        i = tokens.next_significant(i + 1, end)

    if candidate is None:
        pos = tokens[start].pos if start < len(tokens) else 0
        raise ParseError("declaration has no identifier", pos=pos)
    return candidate


def _skip_tag(tokens: TokenList, index: int, end: int) -> Optional[int]:
    """Skip ``struct [name] [{...}]`` and return the next significant index"""
    i = tokens.next_significant(index + 1, end)
    if i is not None and tokens[i].kind is TokenKind.IDENTIFIER:
        i = tokens.next_significant(i + 1, end)
    if i is not None and tokens[i].kind is TokenKind.LBRACE:
        close = tokens.find_matching(i, end)
        if close is None:
            raise ParseError("unterminated aggregate body", pos=tokens[i].pos)
        i = tokens.next_significant(close + 1, end)
    return i


def _consume_suffixes(tokens: TokenList, right: int, end: int, chain: List[DeclType]) -> int:
    """Array and function suffixes to the right, left to right"""
    i = tokens.next_significant(right, end)
    while i is not None and tokens[i].kind in (TokenKind.LBRACKET, TokenKind.LPAREN):
        close = tokens.find_matching(i, end)
        if close is None:
            raise ParseError("unbalanced declarator suffix", pos=tokens[i].pos)
        if tokens[i].kind is TokenKind.LBRACKET:
            chain.append(DeclType.array(tokens.compact_text(i + 1, close) or None))
        else:
            chain.append(DeclType.function(tokens.text(i + 1, close).strip()))
        right = close + 1
        i = tokens.next_significant(right, end)
    return right


def _consume_pointers(tokens: TokenList, left: int, start: int, chain: List[DeclType]) -> int:
    """Pointers (with their qualifiers) to the left, right to left"""
    while True:
        i = tokens.prev_significant(left, start)
        qualifiers = []
        while i is not None and tokens[i].value in TYPE_QUALIFIERS:
            qualifiers.append(tokens[i].value)
            i = tokens.prev_significant(i, start)
        if i is None or tokens[i].value not in ("*", "^"):
            # Qualifiers not preceded by `*` belong to the base type
            return left
        chain.append(DeclType.pointer(reversed(qualifiers)))
        left = i
