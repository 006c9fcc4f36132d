"""
Refactor orchestrator.

Drives a whole translation unit through the pipeline:

1. tokenize once and find every allocation site
2. index function definitions (tree-sitter) and group sites per function
3. seed the refactor set with functions holding unchecked allocations
4. grow the set to a fixed point over the call graph: whoever calls a
   member must propagate its status too (the entry point never changes)
5. rewrite member signatures, bodies and prototypes; every other function
   only gets its calls to members fixed up
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set

from cguard.analysis.allocations import AllocationSiteList, find_allocations
from cguard.analysis.functions import FunctionDef, FunctionIndex, Prototype
from cguard.config import RewriteConfig
from cguard.core._lexer import tokenize
from cguard.core.tokens import TokenKind, TokenList
from cguard.errors import ParseError
from cguard.rewriting.body import rewrite_body, will_rewrite_call
from cguard.rewriting.context import (
    RefactorContext, RefactorType, RefactoredFunction, SignatureTransform, TransformType,
)
from cguard.rewriting.signature import parse_signature, rewrite_signature
from cguard.specs.c_allocators import AllocatorRegistry

logger = logging.getLogger(__name__)


@dataclass
class FixResult:
    """Outcome of refactoring one translation unit"""
    source: str
    output: str
    refactored: RefactorContext
    sites: AllocationSiteList
    functions: List[FunctionDef] = field(default_factory=list)
    rounds: int = 0

    @property
    def changed(self) -> bool:
        return self.output != self.source


def orchestrate_fix(source: str, *, registry: AllocatorRegistry = None,
                    config: RewriteConfig = None) -> str:
    """Return ``source`` rewritten to propagate allocation failures"""
    return refactor_source(source, registry=registry, config=config).output


def refactor_source(
    source: str,
    *,
    registry: AllocatorRegistry = None,
    config: RewriteConfig = None,
    index: FunctionIndex = None,
) -> FixResult:
    """Run the full pipeline and report what changed"""
    if source is None:
        raise ParseError("orchestrate_fix: source is required")
    config = config or RewriteConfig()

    tokens = tokenize(source)
    sites = find_allocations(tokens, registry, check_window=config.check_window)
    functions, prototypes = (index or FunctionIndex()).scan(tokens)

    contracts = call_contracts(tokens, functions)
    members, rounds = compute_refactor_set(tokens, functions, sites, config.entry_point, contracts)
    context, transforms = _classify(tokens, functions, members)
    if context:
        logger.info("refactoring %d function(s): %s", len(context), ", ".join(context.names()))

    opaque = {func.name for func in functions if contracts.get(func.name) is None}
    output = _splice(tokens, functions, prototypes, sites, context, transforms, config, opaque)
    return FixResult(source, output, context, sites, functions, rounds)


def compute_refactor_set(
    tokens: TokenList,
    functions: List[FunctionDef],
    sites: AllocationSiteList,
    entry_point: str = "main",
    contracts: Dict[str, Optional[RefactorType]] = None,
):
    """Names of the functions needing a status-returning signature.

    Only calls that the body rewriter will check pull a caller in, and a
    function whose header cannot be rewritten never joins.
    Returns ``(members, rounds)``; ``rounds`` counts propagation passes.
    """
    if contracts is None:
        contracts = call_contracts(tokens, functions)
    known = {name: kind for name, kind in contracts.items() if kind is not None}

    members: Set[str] = set()
    for func in functions:
        if func.name == entry_point:
            continue
        unchecked = sites.within(func.body_start, func.end).unchecked()
        if not unchecked:
            continue
        if func.name not in known:
            logger.warning("cannot rewrite the header of %s; its allocations are left unguarded",
                           func.name)
            continue
        logger.debug("seed %s: %d unchecked allocation(s)", func.name, len(unchecked))
        members.add(func.name)

    callees = {id(func): called_functions(tokens, func, known) for func in functions}

    rounds = 0
    # Each productive round adds at least one function
    for rounds in range(1, len(functions) + 2):
        added = [
            func.name for func in functions
            if func.name not in members
            and func.name != entry_point
            and func.name in known
            and callees[id(func)] & members
        ]
        if not added:
            break
        logger.debug("round %d: %s", rounds, ", ".join(added))
        members.update(added)
    return members, rounds


def called_functions(tokens: TokenList, func: FunctionDef,
                     contracts: Dict[str, RefactorType]) -> Set[str]:
    """Functions from ``contracts`` that ``func`` calls where their status gets checked"""
    called = set()
    for i in range(func.body_start, func.end):
        tok = tokens[i]
        if tok.kind is not TokenKind.IDENTIFIER or tok.value not in contracts:
            continue
        if will_rewrite_call(tokens, i, contracts[tok.value]):
            called.add(tok.value)
    return called


def call_contracts(tokens: TokenList, functions: List[FunctionDef]) -> Dict[str, Optional[RefactorType]]:
    """Calling contract each function would get if refactored.

    None marks a header the signature rewriter leaves alone
    (``int (*get(void))(int)``).
    """
    contracts: Dict[str, Optional[RefactorType]] = {}
    for func in functions:
        if func.name in contracts:
            continue
        try:
            parts = parse_signature(tokens[func.start:func.body_start])
        except ParseError as e:
            logger.debug("unparsed header of %s: %s", func.name, e)
            contracts[func.name] = None
            continue
        if parts.nested_declarator:
            contracts[func.name] = None
        elif parts.returns_void or parts.returns_int:
            contracts[func.name] = RefactorType.VOID_TO_INT
        else:
            contracts[func.name] = RefactorType.PTR_TO_INT_OUT
    return contracts


def _classify(tokens: TokenList, functions: List[FunctionDef], members: Set[str]):
    context = RefactorContext()
    transforms: Dict[str, SignatureTransform] = {}
    for func in functions:
        if func.name not in members or func.name in context:
            continue
        parts = parse_signature(tokens[func.start:func.body_start])
        if parts.returns_void:
            context.add(RefactoredFunction(func.name, RefactorType.VOID_TO_INT))
            transforms[func.name] = SignatureTransform(TransformType.VOID_TO_INT)
        elif parts.returns_int:
            # Already returns a status; only its callers change
            context.add(RefactoredFunction(func.name, RefactorType.VOID_TO_INT, "int"))
            transforms[func.name] = SignatureTransform(TransformType.NONE)
        else:
            return_type = parts.return_type.strip()
            context.add(RefactoredFunction(func.name, RefactorType.PTR_TO_INT_OUT, return_type))
            transforms[func.name] = SignatureTransform(TransformType.RET_PTR_TO_ARG, return_type)
        logger.debug("classified %s as %s", func.name, context.get(func.name).type.name)
    return context, transforms


def _splice(tokens, functions, prototypes, sites, context, transforms, config, opaque=frozenset()) -> str:
    """Reassemble the translation unit in file order"""
    items = sorted(list(functions) + [p for p in prototypes if p.name in context],
                   key=lambda item: item.start)
    out = []
    cursor = 0
    for item in items:
        if item.start < cursor:
            continue
        out.append(tokens.text(cursor, item.start))
        if isinstance(item, Prototype):
            out.append(_rewrite_prototype(tokens, item, config))
        else:
            if item.name in opaque:
                # No status can leave this function
                out.append(tokens.text(item.start, item.end))
            else:
                out.append(_rewrite_function(tokens, item, sites, context, transforms, config))
        cursor = item.end
    out.append(tokens.text(cursor))
    return "".join(out)


def _rewrite_function(tokens, func: FunctionDef, sites, context, transforms, config) -> str:
    header = tokens[func.start:func.body_start]
    body = tokens[func.body_start:func.end]
    if func.name in context:
        local = [replace(s, token_index=s.token_index - func.body_start)
                 for s in sites.within(func.body_start, func.end)]
        new_header = rewrite_signature(header, out_param=config.out_param)
        new_body = rewrite_body(body, local, context, transforms.get(func.name), config=config)
        return new_header + new_body
    return header.text() + rewrite_body(body, (), context, None, config=config)


def _rewrite_prototype(tokens, proto: Prototype, config) -> str:
    semi = tokens.prev_significant(proto.end, proto.start)
    if semi is None or tokens[semi].kind is not TokenKind.SEMICOLON:
        return tokens.text(proto.start, proto.end)
    return rewrite_signature(tokens[proto.start:semi], out_param=config.out_param) + \
        tokens.text(semi, proto.end)
