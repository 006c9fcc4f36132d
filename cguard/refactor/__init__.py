"""
Translation-unit refactoring
"""

from cguard.refactor.orchestrator import (
    FixResult,
    compute_refactor_set,
    orchestrate_fix,
    refactor_source,
)

__all__ = ["FixResult", "compute_refactor_set", "orchestrate_fix", "refactor_source"]
