"""
Rewrite configuration.

Defaults match the conventions of the generated code (ENOMEM guards, an
``rc`` status local, an ``out`` parameter). Environment variables overlay
the defaults and CLI flags overlay both.
"""

import os
from dataclasses import dataclass, replace
from typing import Optional

from cguard.errors import ParseError


DEFAULT_CHECK_WINDOW = 32


@dataclass(frozen=True)
class RewriteConfig:
    """Names and codes used when emitting error-propagating C"""

    error_code: str = "ENOMEM"
    status_var: str = "rc"
    out_param: str = "out"
    success_code: str = "0"
    # Raw-token radius searched for `<` / `-1` around NEGATIVE_INT calls
    check_window: int = DEFAULT_CHECK_WINDOW
    # Function whose signature is never changed
    entry_point: str = "main"

    def __post_init__(self):
        if self.check_window < 0:
            raise ParseError(f"check_window must be non-negative, got {self.check_window}")
        for name in ("error_code", "status_var", "out_param", "success_code", "entry_point"):
            if not getattr(self, name):
                raise ParseError(f"{name} must not be empty")

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "RewriteConfig":
        """Build a config from CGUARD_* environment variables"""
        env = os.environ if environ is None else environ
        overrides = {}
        for field_name, var in (
            ("error_code", "CGUARD_ERROR_CODE"),
            ("status_var", "CGUARD_STATUS_VAR"),
            ("out_param", "CGUARD_OUT_PARAM"),
        ):
            if env.get(var):
                overrides[field_name] = env[var]
        window = env.get("CGUARD_CHECK_WINDOW")
        if window:
            try:
                overrides["check_window"] = int(window)
            except ValueError:
                raise ParseError(f"CGUARD_CHECK_WINDOW must be an integer, got {window!r}")
        return cls(**overrides)

    def override(self, **changes) -> "RewriteConfig":
        """Return a copy with the non-None values in ``changes`` applied"""
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes) if changes else self


DEFAULT_CONFIG = RewriteConfig()
