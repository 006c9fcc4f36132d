"""
Refactor bookkeeping shared by the rewriters and the orchestrator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Optional


class RefactorType(Enum):
    """New calling contract of a refactored function"""
    VOID_TO_INT = "void_to_int"          # f(a) now returns a status
    PTR_TO_INT_OUT = "ptr_to_int_out"    # value moves to a trailing out-parameter


class TransformType(Enum):
    """What happens to the return statements of a function being rewritten"""
    NONE = "none"
    VOID_TO_INT = "void_to_int"
    RET_PTR_TO_ARG = "ret_ptr_to_arg"


@dataclass(frozen=True)
class RefactoredFunction:
    """A function whose signature changed"""
    name: str
    type: RefactorType
    # Return type before the rewrite; the out-parameter points to it
    original_return_type: Optional[str] = None

    @property
    def value_type(self) -> str:
        return (self.original_return_type or "int").strip()


@dataclass(frozen=True)
class SignatureTransform:
    """Return-statement rewrite applied to one function body"""
    type: TransformType = TransformType.NONE
    return_type: Optional[str] = None


class RefactorContext:
    """Insertion-ordered set of refactored functions, unique by name"""

    def __init__(self, functions=()):
        self._by_name: Dict[str, RefactoredFunction] = {}
        for func in functions:
            self.add(func)

    def add(self, func: RefactoredFunction) -> bool:
        """Add ``func``; returns False when the name is already present"""
        if func.name in self._by_name:
            return False
        self._by_name[func.name] = func
        return True

    def get(self, name: str) -> Optional[RefactoredFunction]:
        return self._by_name.get(name)

    def __contains__(self, name) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[RefactoredFunction]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def names(self):
        return list(self._by_name)

    def __repr__(self):
        return f"RefactorContext({self.names()})"
