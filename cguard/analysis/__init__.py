"""
Analysis passes over token lists: allocation sites, function index, audit.

The function index needs tree-sitter-c and is imported from
cguard.analysis.functions directly.
"""

from cguard.analysis.allocations import (
    AllocationSite,
    AllocationSiteList,
    find_allocations,
    is_checked,
)
from cguard.analysis.audit import AuditStats, audit_source, audit_paths

__all__ = [
    "AllocationSite",
    "AllocationSiteList",
    "find_allocations",
    "is_checked",
    "AuditStats",
    "audit_source",
    "audit_paths",
]
