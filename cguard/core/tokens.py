"""
Token model for C source.

A TokenList is a flat, read-only array of tokens over one source buffer.
All passes navigate it by index with explicit depth counters instead of
building a syntax tree.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Sequence, Union


class TokenKind(Enum):
    """Lexical categories produced by the C lexer"""
    IDENTIFIER = "identifier"
    KEYWORD_STRUCT = "struct"
    KEYWORD_ENUM = "enum"
    KEYWORD_UNION = "union"
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    SEMICOLON = ";"
    COMMA = ","
    NUMBER_LITERAL = "number"
    STRING_LITERAL = "string"
    CHAR_LITERAL = "char"
    WHITESPACE = "whitespace"
    COMMENT = "comment"
    MACRO = "macro"
    OTHER = "other"


# Tokens that never affect scanning decisions
TRIVIA = frozenset({TokenKind.WHITESPACE, TokenKind.COMMENT, TokenKind.MACRO})

TAG_KEYWORDS = frozenset({TokenKind.KEYWORD_STRUCT, TokenKind.KEYWORD_ENUM, TokenKind.KEYWORD_UNION})

OPENERS = {
    TokenKind.LPAREN: TokenKind.RPAREN,
    TokenKind.LBRACE: TokenKind.RBRACE,
    TokenKind.LBRACKET: TokenKind.RBRACKET,
}

# Keywords are lexed as IDENTIFIER; passes that need "a real name" filter on this set.
C_KEYWORDS = frozenset({
    'auto', 'break', 'case', 'char', 'const', 'continue', 'default', 'do',
    'double', 'else', 'enum', 'extern', 'float', 'for', 'goto', 'if',
    'inline', 'int', 'long', 'register', 'restrict', 'return', 'short',
    'signed', 'sizeof', 'static', 'struct', 'switch', 'typedef', 'union',
    'unsigned', 'void', 'volatile', 'while',
    '_Alignas', '_Alignof', '_Atomic', '_Bool', '_Complex', '_Generic',
    '_Imaginary', '_Noreturn', '_Static_assert', '_Thread_local',
    'bool', 'typeof', '__typeof__', '__inline', '__inline__', '__restrict',
    '__restrict__', '__volatile__', '__const', '__attribute__', '__declspec',
    '__extension__', 'alignof', 'alignas', 'static_assert', 'thread_local',
    'nullptr', 'constexpr',
})

TYPE_QUALIFIERS = frozenset({
    'const', 'volatile', 'restrict', '_Atomic', '__restrict', '__restrict__',
    '__const', '__volatile__',
})


@dataclass(frozen=True)
class Token:
    """A lexeme with its character offset into the source"""
    kind: TokenKind
    value: str
    pos: int

    @property
    def end(self) -> int:
        return self.pos + len(self.value)

    @property
    def is_trivia(self) -> bool:
        return self.kind in TRIVIA

    def is_name(self) -> bool:
        """True for identifiers that are not C keywords"""
        return self.kind is TokenKind.IDENTIFIER and self.value not in C_KEYWORDS

    def __repr__(self):
        return f"Token({self.kind.name}, {self.value!r}, {self.pos})"


class TokenList(Sequence):
    """Immutable indexable token sequence bound to its source text.

    Slices are TokenLists too; token positions stay absolute so a slice can
    always be mapped back into the original buffer.
    """

    __slots__ = ("_tokens", "source")

    def __init__(self, tokens, source: str = ""):
        self._tokens = tuple(tokens)
        self.source = source

    def __len__(self) -> int:
        return len(self._tokens)

    def __iter__(self) -> Iterator[Token]:
        return iter(self._tokens)

    def __getitem__(self, index: Union[int, slice]):
        if isinstance(index, slice):
            return TokenList(self._tokens[index], self.source)
        return self._tokens[index]

    def __repr__(self):
        return f"TokenList({len(self._tokens)} tokens)"

    def text(self, start: int = 0, end: Optional[int] = None) -> str:
        """Reconstruct the source text of tokens[start:end]"""
        return "".join(tok.value for tok in self._tokens[start:end])

    def value(self, index: Optional[int]) -> Optional[str]:
        """Token text at index, or None when out of range"""
        if index is None or index < 0 or index >= len(self._tokens):
            return None
        return self._tokens[index].value

    def next_significant(self, index: int, end: Optional[int] = None) -> Optional[int]:
        """Index of the first non-trivia token at or after ``index``"""
        limit = len(self._tokens) if end is None else min(end, len(self._tokens))
        i = max(index, 0)
        while i < limit:
            if not self._tokens[i].is_trivia:
                return i
            i += 1
        return None

    def prev_significant(self, index: int, start: int = 0) -> Optional[int]:
        """Index of the last non-trivia token strictly before ``index``"""
        i = min(index, len(self._tokens)) - 1
        while i >= start:
            if not self._tokens[i].is_trivia:
                return i
            i -= 1
        return None

    def find_matching(self, open_index: int, end: Optional[int] = None) -> Optional[int]:
        """Index of the delimiter closing the one at ``open_index``.

        Only the delimiter kind being matched is counted, so a stray brace
        inside parentheses does not derail the search.
        """
        opener = self._tokens[open_index].kind
        closer = OPENERS.get(opener)
        if closer is None:
            return None
        limit = len(self._tokens) if end is None else min(end, len(self._tokens))
        depth = 0
        for i in range(open_index, limit):
            kind = self._tokens[i].kind
            if kind is opener:
                depth += 1
            elif kind is closer:
                depth -= 1
                if depth == 0:
                    return i
        return None

    def find_opening(self, close_index: int, start: int = 0) -> Optional[int]:
        """Index of the delimiter opening the one at ``close_index``"""
        closer = self._tokens[close_index].kind
        opener = next((o for o, c in OPENERS.items() if c is closer), None)
        if opener is None:
            return None
        depth = 0
        for i in range(close_index, start - 1, -1):
            kind = self._tokens[i].kind
            if kind is closer:
                depth += 1
            elif kind is opener:
                depth -= 1
                if depth == 0:
                    return i
        return None

    def significant(self, start: int = 0, end: Optional[int] = None) -> list:
        """Indices of the non-trivia tokens in [start, end)"""
        limit = len(self._tokens) if end is None else min(end, len(self._tokens))
        return [i for i in range(start, limit) if not self._tokens[i].is_trivia]

    def compact_text(self, start: int, end: int) -> str:
        """Text of the significant tokens in [start, end) with trivia dropped.

        Two word-like tokens that were separated in the source keep a single
        space between them (``unsigned long``, ``sizeof x``).
        """
        parts = []
        prev = None
        for i in self.significant(start, end):
            tok = self._tokens[i]
            if prev is not None and prev + 1 < i and _is_word(self._tokens[prev]) and _is_word(tok):
                parts.append(" ")
            parts.append(tok.value)
            prev = i
        return "".join(parts)


_WORD_KINDS = TAG_KEYWORDS | {TokenKind.IDENTIFIER, TokenKind.NUMBER_LITERAL}


def _is_word(tok: Token) -> bool:
    return tok.kind in _WORD_KINDS
