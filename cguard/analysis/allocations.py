"""
Allocation analysis.

Finds calls to known allocators and decides, per call site, whether the
failure of the call is checked before the acquired resource is used.

The analysis is purely lexical: it walks the token list with balanced
delimiter counters. It understands three shapes of checking:

- the call sits inside an ``if``/``while`` condition
  (``if ((p = malloc(n)) == NULL)``)
- a later ``if``/``while`` condition in the same block mentions the
  captured variable (``p = malloc(n); if (!p) ...``)
- for NEGATIVE_INT allocators the condition must also compare with ``<``
  or against ``-1``
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from cguard.config import DEFAULT_CHECK_WINDOW
from cguard.core.tokens import TokenKind, TokenList
from cguard.errors import require_tokens
from cguard.specs.c_allocators import (
    AllocatorRegistry, AllocatorSpec, CallStyle, CheckStyle, DEFAULT_REGISTRY,
)

logger = logging.getLogger(__name__)


_BOUNDARIES = frozenset({TokenKind.SEMICOLON, TokenKind.LBRACE, TokenKind.RBRACE})
_CONDITION_KEYWORDS = frozenset({"if", "while"})
_HEADER_KEYWORDS = frozenset({"if", "while", "for", "switch"})
_MEMBER_ACCESS = frozenset({".", "->"})

# Tokens after which a `*` is a binary multiplication, not a dereference
_OPERAND_KINDS = frozenset({
    TokenKind.NUMBER_LITERAL, TokenKind.STRING_LITERAL, TokenKind.CHAR_LITERAL,
    TokenKind.RPAREN, TokenKind.RBRACKET,
})


@dataclass(frozen=True)
class AllocationSite:
    """One call to an allocator and what happens to its result"""
    token_index: int
    var_name: Optional[str]
    is_checked: bool
    used_before_check: bool
    is_return_stmt: bool
    spec: AllocatorSpec
    # Variable receiving an ARG_PTR/STRUCT_PTR status code (`rc = asprintf(...)`)
    result_var: Optional[str] = None

    def __post_init__(self):
        if self.used_before_check and self.is_checked:
            raise ValueError(
                f"site at token {self.token_index}: used before check implies unchecked"
            )

    @property
    def allocator(self) -> str:
        return self.spec.name

    def __repr__(self):
        state = "checked" if self.is_checked else "unchecked"
        if self.used_before_check:
            state += ",used-before-check"
        if self.is_return_stmt:
            state += ",return"
        return f"AllocationSite({self.spec.name}@{self.token_index}, var={self.var_name!r}, {state})"


class AllocationSiteList(list):
    """Allocation sites in token order"""

    def unchecked(self) -> "AllocationSiteList":
        return AllocationSiteList(s for s in self if not s.is_checked)

    def within(self, start: int, end: int) -> "AllocationSiteList":
        """Sites whose call token lies in [start, end)"""
        return AllocationSiteList(s for s in self if start <= s.token_index < end)


def find_allocations(
    tokens: TokenList,
    registry: AllocatorRegistry = None,
    *,
    check_window: int = DEFAULT_CHECK_WINDOW,
) -> AllocationSiteList:
    """Locate every allocator call in ``tokens`` and classify its checking"""
    require_tokens(tokens, "find_allocations")
    registry = registry or DEFAULT_REGISTRY
    sites = AllocationSiteList()

    for i, tok in enumerate(tokens):
        if tok.kind is not TokenKind.IDENTIFIER:
            continue
        spec = registry.get(tok.value)
        if spec is None or not _is_call(tokens, i):
            continue

        prev = tokens.prev_significant(i)
        if prev is not None and tokens[prev].value == "return":
            sites.append(AllocationSite(i, None, False, False, True, spec))
            continue

        result_var = assigned_variable(tokens, i)
        if spec.call_style is CallStyle.RETURN_PTR:
            var = result_var
            result_var = None
        else:
            var = _pointer_argument(tokens, i, spec) or result_var

        if var is None:
            checked = _condition_checks_call(tokens, i, spec, check_window)
            used_before = False
        else:
            checked, used_before = is_checked(tokens, i, var, spec, check_window=check_window)

        site = AllocationSite(i, var, checked, used_before, False, spec, result_var)
        logger.debug("found %r", site)
        sites.append(site)

    return sites


def is_checked(
    tokens: TokenList,
    call_index: int,
    var_name: str,
    spec: AllocatorSpec,
    *,
    check_window: int = DEFAULT_CHECK_WINDOW,
) -> Tuple[bool, bool]:
    """Decide whether the allocation at ``call_index`` is checked.

    Returns ``(is_checked, used_before_check)``.
    """
    if _condition_checks_call(tokens, call_index, spec, check_window):
        return True, False

    watched = {var_name}
    if spec.call_style is not CallStyle.RETURN_PTR:
        # `rc = asprintf(&s, ...); if (rc < 0)` checks through the status
        status = assigned_variable(tokens, call_index)
        if status:
            watched.add(status)

    end = statement_end(tokens, call_index)
    if end is None:
        return False, False

    depth = 0
    i = end + 1
    while i < len(tokens):
        tok = tokens[i]
        if tok.kind is TokenKind.LBRACE:
            depth += 1
        elif tok.kind is TokenKind.RBRACE:
            if depth == 0:
                return False, False
            depth -= 1
        elif tok.kind is TokenKind.IDENTIFIER and tok.value in watched and not _is_member(tokens, i):
            open_paren = enclosing_condition(tokens, i)
            if open_paren is not None:
                close = tokens.find_matching(open_paren)
                close = len(tokens) if close is None else close
                if _condition_satisfies(tokens, open_paren, close, spec):
                    return True, False
                # Skip the rest of a non-qualifying condition
                i = close
            elif tok.value == var_name and is_dereference(tokens, i):
                return False, True
            elif _is_reassignment(tokens, i):
                return False, False
        i += 1
    return False, False


def enclosing_condition(tokens: TokenList, index: int) -> Optional[int]:
    """Index of the ``(`` of an ``if``/``while`` condition containing ``index``.

    Walks backward over balanced parentheses; gives up at a statement
    boundary.
    """
    depth = 0
    i = index - 1
    while i >= 0:
        tok = tokens[i]
        if tok.kind in _BOUNDARIES:
            return None
        if tok.kind is TokenKind.RPAREN:
            depth += 1
        elif tok.kind is TokenKind.LPAREN:
            if depth > 0:
                depth -= 1
            else:
                prev = tokens.prev_significant(i)
                if prev is not None and tokens[prev].value in _CONDITION_KEYWORDS:
                    return i
        i -= 1
    return None


def is_dereference(tokens: TokenList, index: int) -> bool:
    """True when the identifier at ``index`` is dereferenced"""
    nxt = tokens.next_significant(index + 1)
    if nxt is not None and tokens[nxt].value in ("->", "[", "{"):
        return True
    prev = tokens.prev_significant(index)
    if prev is None or tokens[prev].value != "*":
        return False
    before = tokens.prev_significant(prev)
    if before is None:
        return True
    tok = tokens[before]
    if tok.kind in _OPERAND_KINDS:
        return False
    # `a * p` multiplies; `return *p` dereferences
    return not tok.is_name()


def assigned_variable(tokens: TokenList, call_index: int) -> Optional[str]:
    """Identifier on the left of the ``=`` that receives the call's value.

    Casts and grouping parentheses between the ``=`` and the call are
    crossed; an enclosing call (``f(malloc(n))``) means no variable.
    """
    depth = 0
    i = call_index - 1
    while i >= 0:
        tok = tokens[i]
        if tok.kind in _BOUNDARIES:
            return None
        if tok.kind is TokenKind.RPAREN:
            depth += 1
        elif tok.kind is TokenKind.LPAREN:
            if depth > 0:
                depth -= 1
            else:
                prev = tokens.prev_significant(i)
                if prev is not None and tokens[prev].is_name():
                    return None
        elif tok.value == "=" and depth == 0:
            prev = tokens.prev_significant(i)
            if prev is not None and tokens[prev].is_name():
                return tokens[prev].value
            return None
        i -= 1
    return None


def call_arguments(tokens: TokenList, call_index: int):
    """Token ranges ``[(start, end), ...]`` of the call's top-level arguments"""
    lparen = tokens.next_significant(call_index + 1)
    if lparen is None or tokens[lparen].kind is not TokenKind.LPAREN:
        return []
    rparen = tokens.find_matching(lparen)
    if rparen is None:
        return []
    ranges = []
    depth = 0
    start = lparen + 1
    for i in range(lparen + 1, rparen):
        kind = tokens[i].kind
        if kind in (TokenKind.LPAREN, TokenKind.LBRACKET, TokenKind.LBRACE):
            depth += 1
        elif kind in (TokenKind.RPAREN, TokenKind.RBRACKET, TokenKind.RBRACE):
            depth -= 1
        elif kind is TokenKind.COMMA and depth == 0:
            ranges.append((start, i))
            start = i + 1
    if tokens.next_significant(start, rparen) is not None:
        ranges.append((start, rparen))
    return ranges


def statement_end(tokens: TokenList, index: int) -> Optional[int]:
    """Index of the ``;`` ending the statement that contains ``index``.

    Parenthesised ``;`` (for-loop headers) are skipped. Returns None when a
    brace is reached first.
    """
    depth = 0
    for i in range(index, len(tokens)):
        kind = tokens[i].kind
        if kind is TokenKind.LPAREN:
            depth += 1
        elif kind is TokenKind.RPAREN:
            depth -= 1
        elif kind is TokenKind.SEMICOLON and depth <= 0:
            return i
        elif kind in (TokenKind.LBRACE, TokenKind.RBRACE) and depth <= 0:
            return None
    return None


def statement_head(tokens: TokenList, index: int) -> Optional[Tuple[int, bool]]:
    """First significant token of the statement holding ``index``.

    Returns ``(start, braceless)`` where ``braceless`` is True when the
    statement is the unbraced body of ``if``/``while``/``for``/``else``/``do``.
    Statement labels (``case 1:``, ``default:``, ``again:``) are stepped
    over. Returns None when ``index`` sits inside a ``for``/``switch``
    header, where no statement can be inserted.
    """
    depth = 0
    i = index - 1
    while i >= 0:
        tok = tokens[i]
        if tok.kind in _BOUNDARIES:
            break
        if tok.kind is TokenKind.RPAREN:
            if depth == 0:
                opening = tokens.find_opening(i)
                before = tokens.prev_significant(opening) if opening is not None else None
                if before is not None and tokens[before].value in _HEADER_KEYWORDS:
                    return tokens.next_significant(i + 1), True
            depth += 1
        elif tok.kind is TokenKind.LPAREN:
            if depth > 0:
                depth -= 1
            else:
                before = tokens.prev_significant(i)
                if before is not None and tokens[before].value in ("for", "switch"):
                    return None
        elif depth == 0 and tok.value in ("else", "do"):
            return tokens.next_significant(i + 1), True
        i -= 1
    start = tokens.next_significant(i + 1)
    if start is None:
        return index, False
    return _skip_labels(tokens, start, index), False


def follows_label(tokens: TokenList, start: int) -> bool:
    """True when the statement at ``start`` carries a label (``case 1: f();``)"""
    prev = tokens.prev_significant(start)
    return prev is not None and tokens[prev].value == ":"


def _skip_labels(tokens: TokenList, start: int, limit: int) -> int:
    """Step past ``case X:``, ``default:`` and ``name:`` labels before ``limit``"""
    while start < limit:
        tok = tokens[start]
        colon = None
        if tok.value == "case":
            colon = _case_colon(tokens, start, limit)
        elif tok.value == "default" or tok.is_name():
            nxt = tokens.next_significant(start + 1, limit)
            if nxt is not None and tokens[nxt].value == ":":
                colon = nxt
        if colon is None:
            break
        nxt = tokens.next_significant(colon + 1)
        if nxt is None:
            break
        start = nxt
    return start


def _case_colon(tokens: TokenList, start: int, limit: int) -> Optional[int]:
    pending = 0  # unmatched `?` in the case expression
    for i in tokens.significant(start + 1, limit):
        value = tokens[i].value
        if value == "?":
            pending += 1
        elif value == ":":
            if not pending:
                return i
            pending -= 1
    return None


def _is_call(tokens: TokenList, index: int) -> bool:
    nxt = tokens.next_significant(index + 1)
    if nxt is None or tokens[nxt].kind is not TokenKind.LPAREN:
        return False
    return not _is_member(tokens, index)


def _is_member(tokens: TokenList, index: int) -> bool:
    prev = tokens.prev_significant(index)
    return prev is not None and tokens[prev].value in _MEMBER_ACCESS


def _is_reassignment(tokens: TokenList, index: int) -> bool:
    nxt = tokens.next_significant(index + 1)
    return nxt is not None and tokens[nxt].value == "="


def _pointer_argument(tokens: TokenList, call_index: int, spec: AllocatorSpec) -> Optional[str]:
    """Identifier passed at the allocator's pointer position, ``&`` stripped"""
    args = call_arguments(tokens, call_index)
    if spec.ptr_arg_index >= len(args):
        return None
    start, end = args[spec.ptr_arg_index]
    sig = tokens.significant(start, end)
    if sig and tokens[sig[0]].value == "&":
        sig = sig[1:]
    if len(sig) == 1 and tokens[sig[0]].is_name():
        return tokens[sig[0]].value
    return None


def _has_negative_test(tokens: TokenList, start: int, end: int) -> bool:
    """True when tokens[start:end] contain ``<`` / ``<=`` or a literal ``-1``"""
    for i in range(max(start, 0), min(end, len(tokens))):
        value = tokens[i].value
        if value in ("<", "<="):
            return True
        if value == "-":
            nxt = tokens.next_significant(i + 1, end)
            if nxt is not None and tokens[nxt].value == "1":
                return True
    return False


def _condition_checks_call(tokens: TokenList, call_index: int, spec: AllocatorSpec, window: int) -> bool:
    """The call itself sits in a condition that tests its failure"""
    if enclosing_condition(tokens, call_index) is None:
        return False
    if spec.check_style is CheckStyle.NEGATIVE_INT:
        return _has_negative_test(tokens, call_index - window, call_index + window + 1)
    return True


def _condition_satisfies(tokens: TokenList, open_paren: int, close: int, spec: AllocatorSpec) -> bool:
    if spec.check_style is CheckStyle.NEGATIVE_INT:
        return _has_negative_test(tokens, open_paren + 1, close)
    return True
