"""
cguard - allocation failure propagation for C

Finds allocations whose failure is never checked and rewrites C functions
to return error codes, updating every caller transitively.

The library is organized into logical modules:
- core: tokens, lexer, declarator and initializer parsers
- specs: allocator registry
- analysis: allocation analysis, function index, audit
- rewriting: signature and body rewriters
- refactor: whole translation unit orchestration
"""

__version__ = "0.1.0"

from cguard.errors import CguardError, ParseError, SourceIOError
from cguard.config import RewriteConfig

# Lexing and parsing
from cguard.core import (
    Token, TokenKind, TokenList, tokenize,
    DeclKind, DeclType, DeclInfo, parse_declaration, parse_decl,
    InitValue, InitItem, InitList, parse_initializer,
)

# Allocators
from cguard.specs import (
    AllocatorSpec, AllocatorRegistry, CallStyle, CheckStyle, DEFAULT_REGISTRY,
)

# Analysis
from cguard.analysis.allocations import AllocationSite, AllocationSiteList, find_allocations
from cguard.analysis.audit import AuditStats, audit_source, audit_paths

# Rewriting
from cguard.rewriting import (
    RefactorContext, RefactoredFunction, RefactorType,
    SignatureTransform, TransformType,
    rewrite_signature, parse_signature, rewrite_body,
)

# Orchestration
from cguard.refactor import orchestrate_fix, refactor_source, FixResult

__all__ = [
    "__version__",
    # Errors and config
    "CguardError", "ParseError", "SourceIOError", "RewriteConfig",
    # Core
    "Token", "TokenKind", "TokenList", "tokenize",
    "DeclKind", "DeclType", "DeclInfo", "parse_declaration", "parse_decl",
    "InitValue", "InitItem", "InitList", "parse_initializer",
    # Specs
    "AllocatorSpec", "AllocatorRegistry", "CallStyle", "CheckStyle", "DEFAULT_REGISTRY",
    # Analysis
    "AllocationSite", "AllocationSiteList", "find_allocations",
    "AuditStats", "audit_source", "audit_paths",
    # Rewriting
    "RefactorContext", "RefactoredFunction", "RefactorType",
    "SignatureTransform", "TransformType",
    "rewrite_signature", "parse_signature", "rewrite_body",
    # Orchestration
    "orchestrate_fix", "refactor_source", "FixResult",
]
