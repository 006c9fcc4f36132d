"""
Error taxonomy for cguard.

Every failure carries an errno-style code so callers (and the CLI) can
decide whether to skip a file or abort:

- EINVAL: malformed or unparseable input, or invalid arguments
- EIO: file layer failures (reading/writing sources)

Allocation failure is Python's own MemoryError and is never wrapped.
"""

import errno


class CguardError(Exception):
    """Base class for all cguard errors"""

    errno = errno.EIO

    def __init__(self, message: str, *, pos: int = None):
        super().__init__(message)
        self.message = message
        self.pos = pos

    def __str__(self):
        if self.pos is not None:
            return f"{self.message} (at offset {self.pos})"
        return self.message


class ParseError(CguardError, ValueError):
    """Malformed C input or invalid argument (EINVAL)"""

    errno = errno.EINVAL


class SourceIOError(CguardError):
    """Reading or writing a source file failed (EIO)"""

    errno = errno.EIO


def require_tokens(tokens, operation: str):
    """Raise ParseError when an operation is handed no token list"""
    if tokens is None:
        raise ParseError(f"{operation}: token list is required")
    return tokens
