"""
Lexical analyzer for C source.

Produces a lossless token stream: whitespace, comments and preprocessor
lines are kept as tokens so untouched regions reconstruct exactly.
The lexer never fails; bytes it does not recognise become OTHER tokens.
"""

import re
from typing import List

from cguard.core.tokens import Token, TokenKind, TokenList
from cguard.errors import ParseError


_OPERATOR = (
    r'\.\.\.|<<=|>>=|->|\+\+|--|<<|>>|<=|>=|==|!=|&&|\|\||##'
    r'|[-+*/%&|^]=|[-+*/%&|^~!<>=?:.#]'
)


class Lexer:
    """Regex-driven C lexer"""

    TOKEN_PATTERNS = [
        ('WHITESPACE', r'\s+'),
        ('COMMENT', r'/\*[\s\S]*?(?:\*/|\Z)|//(?:[^\n\\]|\\[\s\S])*'),
        # Prefixes: L"", u8"", u"", U""
        ('STRING_LITERAL', r'(?:u8|[LuU])?"(?:[^"\\\n]|\\[\s\S])*"?'),
        ('CHAR_LITERAL', r"(?:u8|[LuU])?'(?:[^'\\\n]|\\[\s\S])*'?"),
        ('NUMBER_LITERAL', r'\.?\d(?:[eEpP][+-]|[\w.\'])*'),
        ('IDENTIFIER', r'[A-Za-z_$][\w$]*'),
        ('LPAREN', r'\('),
        ('RPAREN', r'\)'),
        ('LBRACE', r'\{'),
        ('RBRACE', r'\}'),
        ('LBRACKET', r'\['),
        ('RBRACKET', r'\]'),
        ('SEMICOLON', r';'),
        ('COMMA', r','),
        ('OTHER', _OPERATOR),
        ('UNKNOWN', r'[\s\S]'),
    ]

    _TAGS = {
        'struct': TokenKind.KEYWORD_STRUCT,
        'enum': TokenKind.KEYWORD_ENUM,
        'union': TokenKind.KEYWORD_UNION,
    }

    # A directive runs to the first newline not preceded by a backslash
    _DIRECTIVE = re.compile(r'#(?:[^\n\\]|\\[\s\S])*')
    _COMBINED = re.compile('|'.join(f'(?P<{name}>{pattern})' for name, pattern in TOKEN_PATTERNS))

    def __init__(self, text: str):
        self.text = text
        self.tokens: List[Token] = []
        self._tokenize()

    def _tokenize(self):
        """Tokenize the input text"""
        text = self.text
        pos = 0
        while pos < len(text):
            if text[pos] == '#' and self._at_line_start(pos):
                match = self._DIRECTIVE.match(text, pos)
                self.tokens.append(Token(TokenKind.MACRO, match.group(0), pos))
                pos = match.end()
                continue

            match = self._COMBINED.match(text, pos)
            name = match.lastgroup
            value = match.group(0)
            if name == 'IDENTIFIER':
                kind = self._TAGS.get(value, TokenKind.IDENTIFIER)
            elif name == 'UNKNOWN':
                kind = TokenKind.OTHER
            else:
                kind = TokenKind[name]
            self.tokens.append(Token(kind, value, pos))
            pos = match.end()

    def _at_line_start(self, pos: int) -> bool:
        """True when only blanks separate ``pos`` from the previous newline"""
        i = pos - 1
        while i >= 0 and self.text[i] in ' \t':
            i -= 1
        return i < 0 or self.text[i] in '\r\n'


def tokenize(source: str) -> TokenList:
    """Lex ``source`` into a TokenList; ''.join of values equals the input"""
    if source is None:
        raise ParseError("tokenize: source is required")
    return TokenList(Lexer(source).tokens, source)
