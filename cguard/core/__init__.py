"""
Core lexing and declaration parsing
"""

from cguard.core.tokens import Token, TokenKind, TokenList, C_KEYWORDS
from cguard.core._lexer import Lexer, tokenize
from cguard.core.declarator import (
    DeclKind, DeclType, DeclInfo, parse_declaration, parse_decl,
)
from cguard.core.initializer import InitValue, InitItem, InitList, parse_initializer

__all__ = [
    "Token", "TokenKind", "TokenList", "C_KEYWORDS",
    "Lexer", "tokenize",
    "DeclKind", "DeclType", "DeclInfo", "parse_declaration", "parse_decl",
    "InitValue", "InitItem", "InitList", "parse_initializer",
]
