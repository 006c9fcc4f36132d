"""
Guard injection strategies for unchecked allocation sites.

    p = malloc(n);            ->  p = malloc(n); if (!p) { return ENOMEM; }
    rc = asprintf(&s, ...);   ->  rc = asprintf(&s, ...); if (rc < 0) { return ENOMEM; }
    asprintf(&s, ...);        ->  if (asprintf(&s, ...) < 0) { return ENOMEM; }
    p = realloc(p, n);        ->  { void *_safe_tmp = realloc(p, n); if (!_safe_tmp) return ENOMEM; p = _safe_tmp; }
"""

import logging

from cguard.analysis.allocations import (
    AllocationSite, call_arguments, statement_end, statement_head,
)
from cguard.config import DEFAULT_CONFIG, RewriteConfig
from cguard.core.tokens import TokenList
from cguard.rewriting.patcher import PatchList
from cguard.specs.c_allocators import CallStyle, CheckStyle

logger = logging.getLogger(__name__)


_FAILURE_TESTS = {
    CheckStyle.NULL: "!{}",
    CheckStyle.NEGATIVE_INT: "{} < 0",
    CheckStyle.NONZERO_INT: "{} != 0",
}

# Comparison appended to a bare status-returning call
_FAILURE_SUFFIXES = {
    CheckStyle.NEGATIVE_INT: "< 0",
    CheckStyle.NONZERO_INT: "!= 0",
}


def failure_test(style: CheckStyle, expr: str) -> str:
    """C condition that is true when ``expr`` reports failure"""
    return _FAILURE_TESTS[style].format(expr)


def inject_safety_checks(
    tokens: TokenList,
    sites,
    patches: PatchList,
    config: RewriteConfig = None,
) -> int:
    """Record guard patches for every unchecked, non-return site.

    Returns the number of sites guarded.
    """
    config = config or DEFAULT_CONFIG
    guarded = 0
    for site in sites:
        if site.is_checked or site.is_return_stmt:
            continue
        semi = statement_end(tokens, site.token_index)
        head = statement_head(tokens, site.token_index)
        if semi is None or head is None:
            logger.debug("no statement to guard around %r", site)
            continue
        start, braceless = head

        if site.spec.name == "realloc" and rewrite_realloc(tokens, site, start, semi, patches, config):
            guarded += 1
            continue

        target = site.var_name if site.spec.call_style is CallStyle.RETURN_PTR else site.result_var
        style = site.spec.check_style
        if target:
            guard = f" if ({failure_test(style, target)}) {{ return {config.error_code}; }}"
            if braceless:
                patches.insert(start, "{ ")
                guard += " }"
            patches.insert(semi + 1, guard)
            guarded += 1
        elif site.spec.returns_status and start == site.token_index and _call_ends_statement(tokens, site, semi):
            # The call is the whole statement: test its result in place
            patches.insert(start, "if (")
            patches.replace(semi, semi + 1, f" {_FAILURE_SUFFIXES[style]}) {{ return {config.error_code}; }}")
            guarded += 1
        else:
            logger.debug("result of %s is discarded at token %d; nothing to guard",
                         site.spec.name, site.token_index)
    return guarded


def rewrite_realloc(
    tokens: TokenList,
    site: AllocationSite,
    start: int,
    semi: int,
    patches: PatchList,
    config: RewriteConfig = None,
) -> bool:
    """Rewrite ``p = realloc(p, n);`` so ``p`` survives a failed resize.

    Only a plain self-assignment qualifies; returns False otherwise.
    """
    config = config or DEFAULT_CONFIG
    var = site.var_name
    if not var or tokens[start].value != var:
        return False
    eq = tokens.next_significant(start + 1)
    if eq is None or tokens[eq].value != "=":
        return False
    args = call_arguments(tokens, site.token_index)
    if not args or tokens.compact_text(*args[0]) != var:
        return False

    call = tokens.text(site.token_index, semi)
    patches.replace(
        start, semi + 1,
        f"{{ void *_safe_tmp = {call}; if (!_safe_tmp) return {config.error_code}; {var} = _safe_tmp; }}",
    )
    return True


def _call_ends_statement(tokens: TokenList, site: AllocationSite, semi: int) -> bool:
    lparen = tokens.next_significant(site.token_index + 1)
    rparen = tokens.find_matching(lparen)
    return rparen is not None and tokens.next_significant(rparen + 1) == semi
