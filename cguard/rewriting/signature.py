"""
Signature rewriter.

Turns a function header into its error-propagating form:

    void f(int a)          -> int f(int a)
    char *dup(const char *s) -> int dup(const char *s, char * *out)
    int g(void)            -> int g(void)          (already returns a status)

K&R definitions keep their declaration block; the out-parameter is added to
the identifier list and declared at the end of the block.
"""

import logging
from dataclasses import dataclass

from cguard.core.tokens import TokenKind, TokenList
from cguard.errors import ParseError, require_tokens

logger = logging.getLogger(__name__)


STORAGE_SPECIFIERS = frozenset({
    "static", "extern", "inline", "__inline", "__inline__", "_Noreturn",
    "_Thread_local", "register", "__forceinline",
})
_ATTRIBUTE_KEYWORDS = frozenset({"__attribute__", "__declspec"})


@dataclass(frozen=True)
class SignatureParts:
    """Pieces of a function header, as source text.

    ``prefix`` + ``return_type`` + ``name_text`` + "(" + ``params`` + ")" +
    ``kr_decls`` + ``trailing`` reproduces the header exactly.
    """
    prefix: str
    return_type: str
    name: str
    name_text: str
    params: str
    kr_decls: str
    trailing: str
    return_words: tuple
    # `int (*get(void))(int)`: the name sits inside grouping parens
    nested_declarator: bool = False

    @property
    def returns_void(self) -> bool:
        return self.return_words == ("void",)

    @property
    def returns_int(self) -> bool:
        # An omitted return type is implicit int
        return self.return_words in (("int",), ())

    @property
    def is_kr(self) -> bool:
        return ";" in self.kr_decls

    def params_empty(self) -> bool:
        text = self.params.strip()
        return text == "" or text == "void"


def parse_signature(tokens: TokenList) -> SignatureParts:
    """Split a function header into prefix, return type, name and params"""
    require_tokens(tokens, "parse_signature")
    storage_end = _skip_prefix(tokens)

    name_idx = lparen = None
    for i in range(storage_end, len(tokens)):
        if tokens[i].kind is not TokenKind.LPAREN:
            continue
        prev = tokens.prev_significant(i, storage_end)
        # `int (*get(void))(int)`: grouping parens come before the name
        if prev is not None and tokens[prev].is_name():
            name_idx, lparen = prev, i
            break

    if lparen is None:
        if not any(t.kind is TokenKind.LPAREN for t in tokens):
            raise ParseError("no '(' in function signature")
        raise ParseError("no function name before '('")

    rparen = tokens.find_matching(lparen)
    if rparen is None:
        raise ParseError("unbalanced parentheses in signature", pos=tokens[lparen].pos)

    last = tokens.prev_significant(len(tokens), rparen + 1)
    kr_end = rparen + 1 if last is None else last + 1
    return SignatureParts(
        prefix=tokens.text(0, storage_end),
        return_type=tokens.text(storage_end, name_idx),
        name=tokens[name_idx].value,
        name_text=tokens.text(name_idx, lparen),
        params=tokens.text(lparen + 1, rparen),
        kr_decls=tokens.text(rparen + 1, kr_end),
        trailing=tokens.text(kr_end),
        return_words=tuple(tokens[i].value for i in tokens.significant(storage_end, name_idx)),
        nested_declarator=any(
            (tokens.find_matching(i) or len(tokens)) > name_idx
            for i in range(storage_end, name_idx) if tokens[i].kind is TokenKind.LPAREN
        ),
    )


def rewrite_signature(tokens: TokenList, *, out_param: str = "out") -> str:
    """Return the error-propagating form of the header in ``tokens``"""
    parts = parse_signature(tokens)
    if parts.nested_declarator:
        logger.debug("header of %s has a nested declarator; left unchanged", parts.name)
        return tokens.text()
    if parts.returns_int:
        return tokens.text()

    head = f"{parts.prefix}int {parts.name_text}"
    if parts.returns_void:
        return f"{head}({parts.params}){parts.kr_decls}{parts.trailing}"

    out_type = parts.return_type.strip()
    if parts.is_kr:
        names = out_param if not parts.params.strip() else f"{parts.params}, {out_param}"
        return f"{head}({names}){parts.kr_decls} {out_type} *{out_param};{parts.trailing}"

    decl = f"{out_type} *{out_param}"
    params = decl if parts.params_empty() else f"{parts.params}, {decl}"
    return f"{head}({params}){parts.kr_decls}{parts.trailing}"


def _skip_prefix(tokens: TokenList) -> int:
    """Index of the first return-type token after trivia, attributes and
    storage-class specifiers"""
    i = 0
    n = len(tokens)
    while i < n:
        tok = tokens[i]
        if tok.is_trivia or tok.value in STORAGE_SPECIFIERS:
            i += 1
        elif tok.kind is TokenKind.LBRACKET and _is_cxx_attribute(tokens, i):
            i = tokens.find_matching(i) + 1
        elif tok.value in _ATTRIBUTE_KEYWORDS:
            group = tokens.next_significant(i + 1)
            if group is None or tokens[group].kind is not TokenKind.LPAREN:
                break
            close = tokens.find_matching(group)
            if close is None:
                raise ParseError(f"unterminated {tok.value}", pos=tok.pos)
            i = close + 1
        else:
            break
    return i


def _is_cxx_attribute(tokens: TokenList, index: int) -> bool:
    """``[[...]]`` attribute specifier"""
    nxt = tokens.next_significant(index + 1)
    return (
        nxt is not None
        and tokens[nxt].kind is TokenKind.LBRACKET
        and tokens.find_matching(index) is not None
    )
