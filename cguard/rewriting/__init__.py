"""
Token-level rewriters for function signatures and bodies
"""

from cguard.rewriting.context import (
    RefactorContext,
    RefactoredFunction,
    RefactorType,
    SignatureTransform,
    TransformType,
)
from cguard.rewriting.patcher import Patch, PatchList
from cguard.rewriting.signature import SignatureParts, parse_signature, rewrite_signature
from cguard.rewriting.body import rewrite_body
from cguard.rewriting.strategies import inject_safety_checks

__all__ = [
    "RefactorContext",
    "RefactoredFunction",
    "RefactorType",
    "SignatureTransform",
    "TransformType",
    "Patch",
    "PatchList",
    "SignatureParts",
    "parse_signature",
    "rewrite_signature",
    "rewrite_body",
    "inject_safety_checks",
]
