"""
File layer: locating, reading and writing C sources.

Sources are decoded as UTF-8 with ``surrogateescape`` so that files in any
encoding are written back byte for byte.
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, Union

from cguard.errors import SourceIOError

logger = logging.getLogger(__name__)

C_SUFFIXES = (".c",)


def is_c_source(path: Path) -> bool:
    return path.suffix in C_SUFFIXES


def iter_c_files(paths: Iterable[Union[str, Path]]) -> Iterator[Path]:
    """Expand files and directories into the .c files they contain"""
    for path in map(Path, paths):
        if path.is_dir():
            yield from sorted(p for p in path.rglob("*") if p.is_file() and is_c_source(p))
        elif not path.exists():
            raise SourceIOError(f"no such file or directory: {path}")
        elif is_c_source(path):
            yield path
        else:
            logger.debug("skipping non-C file %s", path)


def read_source(path: Union[str, Path]) -> str:
    try:
        with open(path, encoding="utf-8", errors="surrogateescape", newline="") as f:
            return f.read()
    except OSError as e:
        raise SourceIOError(f"cannot read {path}: {e.strerror or e}")


def write_source(path: Union[str, Path], text: str) -> None:
    try:
        # newline="" keeps CRLF sources untouched
        with open(path, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
            f.write(text)
    except OSError as e:
        raise SourceIOError(f"cannot write {path}: {e.strerror or e}")
