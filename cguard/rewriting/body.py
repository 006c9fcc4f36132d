"""
Body rewriter.

Rewrites one function body (the tokens from its ``{`` to its ``}``):

- guards after unchecked allocation sites (see strategies)
- call sites of functions whose signatures were refactored:

      A();                 ->  rc = A(); if (rc != 0) return rc;
      s = dup(x);          ->  rc = dup(x, &s); if (rc != 0) return rc;
      char *s = dup(x);    ->  char *s ; rc = dup(x, &s); if (rc != 0) return rc;
      return dup(x);       ->  char * _cguard_tmp0; rc = dup(x, &_cguard_tmp0); ...

- return statements of the function itself, when its contract changed:

      return;              ->  return 0;
      return p;            ->  *out = p; return 0;

Everything else is copied token for token.
"""

import logging
from typing import Optional

from cguard.analysis.allocations import (
    enclosing_condition, follows_label, statement_end, statement_head,
)
from cguard.config import DEFAULT_CONFIG, RewriteConfig
from cguard.core.tokens import TAG_KEYWORDS, TokenKind, TokenList
from cguard.errors import require_tokens
from cguard.rewriting.context import (
    RefactorContext, RefactorType, RefactoredFunction, SignatureTransform, TransformType,
)
from cguard.rewriting.patcher import PatchList
from cguard.rewriting.strategies import failure_test, inject_safety_checks

logger = logging.getLogger(__name__)


_STATEMENT_KEYWORDS = frozenset({"return", "else", "do", "case", "goto"})
_INTEGER_WORDS = frozenset({"int", "long", "short", "char", "signed", "unsigned"})


def is_rewritable_call(tokens: TokenList, index: int) -> bool:
    """True when the call at ``index`` is a statement or expression whose
    status can be checked (not a declaration, member call or condition)"""
    prev = tokens.prev_significant(index)
    if prev is not None:
        before = tokens[prev]
        if before.value in (".", "->"):
            return False
        # `void A(void);` or `struct S A(int);` inside a body is a declaration
        if (before.kind is TokenKind.IDENTIFIER and before.value not in _STATEMENT_KEYWORDS) \
                or before.kind in TAG_KEYWORDS:
            return False
    if enclosing_condition(tokens, index) is not None:
        logger.debug("call to %s inside a condition left unchanged", tokens[index].value)
        return False
    return True


def will_rewrite_call(tokens: TokenList, index: int, kind: RefactorType) -> bool:
    """True when a call at ``index`` to a function with contract ``kind`` gets
    its status checked.

    A status-returning function is only checked where the call is a whole
    statement; a call used as a value keeps its value. An out-parameter
    function is rewritten in any statement outside a loop header.
    """
    if not is_rewritable_call(tokens, index):
        return False
    lparen = tokens.next_significant(index + 1)
    if lparen is None or tokens[lparen].kind is not TokenKind.LPAREN:
        return False
    rparen = tokens.find_matching(lparen)
    head = statement_head(tokens, index)
    if rparen is None or head is None:
        return False
    if kind is RefactorType.VOID_TO_INT:
        semi = tokens.next_significant(rparen + 1)
        return head[0] == index and semi is not None and tokens[semi].kind is TokenKind.SEMICOLON
    if head[1] or follows_label(tokens, head[0]):
        return statement_end(tokens, index) is not None
    return True


def rewrite_body(
    tokens: TokenList,
    allocation_sites,
    refactored_funcs: Optional[RefactorContext],
    transform: Optional[SignatureTransform] = None,
    *,
    config: RewriteConfig = None,
) -> str:
    """Rewrite a function body; site indices are relative to ``tokens``"""
    require_tokens(tokens, "rewrite_body")
    config = config or DEFAULT_CONFIG
    sites = allocation_sites or ()
    context = refactored_funcs if refactored_funcs is not None else RefactorContext()

    guards = PatchList()
    inject_safety_checks(tokens, sites, guards, config)

    calls = PatchList()
    rewritten = _CallRewriter(tokens, context, calls, config).run()

    returns = PatchList()
    if transform is not None and transform.type is not TransformType.NONE:
        _rewrite_returns(tokens, sites, transform, returns, config)

    patches = PatchList()
    if rewritten and not declares_local(tokens, config.status_var):
        open_brace = next((i for i, t in enumerate(tokens) if t.kind is TokenKind.LBRACE), None)
        if open_brace is not None:
            patches.insert(open_brace + 1, f"\n  int {config.status_var} = 0;")
    patches.extend(guards)
    patches.extend(calls)
    patches.extend(returns)
    if not len(patches):
        return tokens.text()
    return patches.apply(tokens)


class _CallRewriter:
    """Rewrites call sites of refactored functions inside one body"""

    def __init__(self, tokens: TokenList, context: RefactorContext, patches: PatchList,
                 config: RewriteConfig):
        self.tokens = tokens
        self.context = context
        self.patches = patches
        self.config = config
        self._temps = 0

    @property
    def _check(self) -> str:
        rc = self.config.status_var
        return f" if ({rc} != 0) return {rc};"

    def run(self) -> int:
        tokens = self.tokens
        rewritten = 0
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            func = self.context.get(tok.value) if tok.kind is TokenKind.IDENTIFIER else None
            if func is None:
                i += 1
                continue
            lparen = tokens.next_significant(i + 1)
            if lparen is None or tokens[lparen].kind is not TokenKind.LPAREN:
                i += 1
                continue
            rparen = tokens.find_matching(lparen)
            if rparen is None or not will_rewrite_call(tokens, i, func.type):
                i += 1
                continue

            if func.type is RefactorType.VOID_TO_INT:
                done = self._rewrite_status_call(i, rparen)
            else:
                done = self._rewrite_out_call(func, i, lparen, rparen)
            if done:
                rewritten += 1
                logger.debug("rewrote call to %s at token %d", func.name, i)
                i = rparen + 1
            else:
                i += 1
        return rewritten

    def _rewrite_status_call(self, index: int, rparen: int) -> bool:
        """``A(x);`` -> ``rc = A(x); if (rc != 0) return rc;``"""
        tokens = self.tokens
        semi = tokens.next_significant(rparen + 1)
        head = statement_head(tokens, index)
        if semi is None or tokens[semi].kind is not TokenKind.SEMICOLON or head is None or head[0] != index:
            # Used as a value: the int status flows wherever the void result did
            return False
        pre = f"{self.config.status_var} = "
        post = self._check
        if head[1]:
            pre, post = "{ " + pre, post + " }"
        self.patches.insert(index, pre)
        self.patches.insert(semi + 1, post)
        return True

    def _rewrite_out_call(self, func: RefactoredFunction, index: int, lparen: int, rparen: int) -> bool:
        tokens = self.tokens
        rc = self.config.status_var
        prev = tokens.prev_significant(index)
        semi = tokens.next_significant(rparen + 1)
        ends_statement = semi is not None and tokens[semi].kind is TokenKind.SEMICOLON
        head = statement_head(tokens, index)
        if head is None:
            logger.debug("call to %s in a loop header left unchanged", func.name)
            return False

        if prev is not None and tokens[prev].value == "=" and ends_statement:
            eq = prev
            eq_head = statement_head(tokens, eq)
            lhs = tokens.significant(eq_head[0], eq) if eq_head else []
            if lhs and tokens[lhs[-1]].is_name():
                var = tokens[lhs[-1]].value
                if len(lhs) == 1:
                    pre = ""
                    post = self._check
                    if eq_head[1]:
                        pre, post = "{ ", post + " }"
                    if pre:
                        self.patches.insert(lhs[0], pre)
                    self.patches.replace(lhs[0], eq + 1, f"{rc} =")
                elif _is_declaration(tokens, lhs):
                    post = self._check
                    self.patches.replace(eq, eq + 1, f"; {rc} =")
                else:
                    return self._hoist(func, index, lparen, rparen, head)
                self._append_out_argument(lparen, rparen, f"&{var}")
                self.patches.insert(semi + 1, post)
                return True

        if head[0] == index and ends_statement:
            # Result discarded: receive it in a scoped temporary
            tmp = self._new_temp()
            self.patches.insert(index, f"{{ {func.value_type} {tmp}; {rc} = ")
            self._append_out_argument(lparen, rparen, f"&{tmp}")
            self.patches.insert(semi + 1, f"{self._check} }}")
            return True

        return self._hoist(func, index, lparen, rparen, head)

    def _hoist(self, func: RefactoredFunction, index: int, lparen: int, rparen: int, head) -> bool:
        """Evaluate the call before its statement and substitute a temporary"""
        tokens = self.tokens
        start, braceless = head
        semi = statement_end(tokens, index)
        # A declaration cannot follow a label directly
        wrap = braceless or follows_label(tokens, start)
        if wrap and semi is None:
            return False
        rc = self.config.status_var
        tmp = self._new_temp()
        args = tokens.text(lparen + 1, rparen)
        sep = ", " if args.strip() else ""
        call = f"{tokens[index].value}({args}{sep}&{tmp})"
        prologue = f"{func.value_type} {tmp}; {rc} = {call};{self._check} "
        if wrap:
            prologue = "{ " + prologue
            self.patches.insert(semi + 1, " }")
        self.patches.insert(start, prologue)
        self.patches.replace(index, rparen + 1, tmp)
        return True

    def _append_out_argument(self, lparen: int, rparen: int, arg: str) -> None:
        has_args = self.tokens.next_significant(lparen + 1, rparen) is not None
        self.patches.insert(rparen, f", {arg}" if has_args else arg)

    def _new_temp(self) -> str:
        name = f"_cguard_tmp{self._temps}"
        self._temps += 1
        return name


def _is_declaration(tokens: TokenList, lhs) -> bool:
    """``char *s`` / ``struct S *s`` / ``const T s`` on the left of ``=``"""
    if len(lhs) < 2:
        return False
    first = tokens[lhs[0]]
    if not (first.kind is TokenKind.IDENTIFIER or first.kind in TAG_KEYWORDS):
        return False
    return all(
        tokens[i].kind is TokenKind.IDENTIFIER or tokens[i].kind in TAG_KEYWORDS or tokens[i].value == "*"
        for i in lhs
    )


def declares_local(tokens: TokenList, name: str) -> bool:
    """True when the outermost block of the body declares ``name`` (``int rc = 3;``)"""
    depth = 0
    for i, tok in enumerate(tokens):
        if tok.kind is TokenKind.LBRACE:
            depth += 1
        elif tok.kind is TokenKind.RBRACE:
            depth -= 1
        elif depth == 1 and tok.kind is TokenKind.IDENTIFIER and tok.value == name:
            prev = tokens.prev_significant(i)
            nxt = tokens.next_significant(i + 1)
            if prev is None or nxt is None or tokens[nxt].value not in ("=", ";", ","):
                continue
            before = tokens[prev]
            if before.is_name() or before.value in _INTEGER_WORDS:
                return True
    return False


def _rewrite_returns(tokens: TokenList, sites, transform: SignatureTransform,
                     patches: PatchList, config: RewriteConfig) -> None:
    """Adapt the function's own return statements to the status contract"""
    ok = config.success_code
    returning_sites = {s.token_index: s for s in sites if s.is_return_stmt}

    for i, tok in enumerate(tokens):
        if tok.kind is not TokenKind.IDENTIFIER or tok.value != "return":
            continue
        semi = statement_end(tokens, i)
        if semi is None:
            continue
        expr = tokens.next_significant(i + 1)
        head = statement_head(tokens, i)
        braceless = head is not None and head[1]

        if transform.type is TransformType.VOID_TO_INT:
            if expr == semi:
                patches.insert(semi, f" {ok}")
            continue

        if expr == semi:
            continue
        site = returning_sites.get(expr)
        if site is not None:
            value_type = (transform.return_type or "void *").strip()
            cond = failure_test(site.spec.check_style, "_safe_ret")
            patches.replace(
                i, semi + 1,
                f"{{ {value_type} _safe_ret = {tokens.text(expr, semi)}; "
                f"if ({cond}) return {config.error_code}; "
                f"*{config.out_param} = _safe_ret; return {ok}; }}",
            )
            continue
        pre = f"*{config.out_param} = "
        if braceless:
            pre = "{ " + pre
        patches.replace(i, expr, pre)
        patches.insert(semi + 1, f" return {ok};" + (" }" if braceless else ""))

    if transform.type is TransformType.VOID_TO_INT:
        _append_final_return(tokens, patches, ok)


def _append_final_return(tokens: TokenList, patches: PatchList, ok: str) -> None:
    """Add ``return 0;`` before the closing brace unless the body already ends in a return"""
    close = tokens.prev_significant(len(tokens))
    if close is None or tokens[close].kind is not TokenKind.RBRACE:
        return
    last = tokens.prev_significant(close)
    if last is None:
        return
    if tokens[last].kind is TokenKind.SEMICOLON:
        head = statement_head(tokens, last)
        if head is not None and not head[1] and tokens[head[0]].value == "return":
            return
    patches.insert(last + 1, f" return {ok};")
