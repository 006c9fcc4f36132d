"""
Token-indexed text patches.

Rewriters never edit text in place. They record patches against token
indices and the PatchList renders the final text in one pass, copying
every untouched token verbatim.
"""

import logging
from dataclasses import dataclass
from typing import List

from cguard.core.tokens import TokenList

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Patch:
    """Replace tokens[start:end] with ``text`` (an insertion when start == end)"""
    start: int
    end: int
    text: str

    @property
    def is_insertion(self) -> bool:
        return self.end <= self.start


class PatchList:
    """Ordered collection of patches over one TokenList"""

    def __init__(self):
        self._patches: List[Patch] = []

    def __len__(self) -> int:
        return len(self._patches)

    def __iter__(self):
        return iter(self._patches)

    def insert(self, index: int, text: str) -> None:
        self._patches.append(Patch(index, index, text))

    def replace(self, start: int, end: int, text: str) -> None:
        self._patches.append(Patch(start, end, text))

    def extend(self, other: "PatchList") -> None:
        self._patches.extend(other)

    def apply(self, tokens: TokenList) -> str:
        """Render ``tokens`` with all patches applied.

        Insertions at the same index keep the order they were added and come
        before a replacement starting there. A patch beginning inside an
        already replaced range is dropped.
        """
        ordered = sorted(self._patches, key=lambda p: (p.start, not p.is_insertion))
        out = []
        cursor = 0
        for patch in ordered:
            if patch.start < cursor:
                logger.debug("dropping overlapped patch %r", patch)
                continue
            out.append(tokens.text(cursor, patch.start))
            out.append(patch.text)
            cursor = max(cursor, patch.end, patch.start)
        out.append(tokens.text(cursor))
        return "".join(out)
