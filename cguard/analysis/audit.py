"""
Project audit: allocation-checking statistics over C sources.
"""

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Iterable, Union

from cguard.analysis.allocations import find_allocations
from cguard.core._lexer import tokenize
from cguard.sources import iter_c_files, read_source
from cguard.specs.c_allocators import AllocatorRegistry

logger = logging.getLogger(__name__)


@dataclass
class AuditStats:
    """Counters accumulated over one or more files"""
    files_scanned: int = 0
    allocations_checked: int = 0
    allocations_unchecked: int = 0
    used_before_check: int = 0
    functions_returning_alloc: int = 0

    def __add__(self, other: "AuditStats") -> "AuditStats":
        return AuditStats(**{
            f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)
        })

    @property
    def total_allocations(self) -> int:
        return self.allocations_checked + self.allocations_unchecked

    def to_dict(self) -> dict:
        return asdict(self)


def audit_source(source: str, registry: AllocatorRegistry = None) -> AuditStats:
    """Count allocation sites in one translation unit"""
    stats = AuditStats(files_scanned=1)
    for site in find_allocations(tokenize(source), registry):
        if site.is_return_stmt:
            stats.functions_returning_alloc += 1
        elif site.is_checked:
            stats.allocations_checked += 1
        else:
            stats.allocations_unchecked += 1
            if site.used_before_check:
                stats.used_before_check += 1
    return stats


def audit_paths(paths: Iterable[Union[str, Path]], registry: AllocatorRegistry = None) -> AuditStats:
    """Audit every .c file under ``paths``"""
    total = AuditStats()
    for path in iter_c_files(paths):
        stats = audit_source(read_source(path), registry)
        logger.info("%s: %d checked, %d unchecked", path,
                    stats.allocations_checked, stats.allocations_unchecked)
        total = total + stats
    return total
