"""
Tests for rewrite configuration and the error taxonomy.
"""

import errno

import pytest

from cguard.config import DEFAULT_CONFIG, RewriteConfig
from cguard.errors import CguardError, ParseError, SourceIOError


class TestRewriteConfig:
    """Defaults, environment and overrides"""

    def test_defaults(self):
        """Test the default names and codes"""
        assert DEFAULT_CONFIG.error_code == "ENOMEM"
        assert DEFAULT_CONFIG.status_var == "rc"
        assert DEFAULT_CONFIG.out_param == "out"
        assert DEFAULT_CONFIG.check_window == 32
        assert DEFAULT_CONFIG.entry_point == "main"

    def test_from_env(self):
        """Test CGUARD_* variables overlay the defaults"""
        config = RewriteConfig.from_env({
            "CGUARD_ERROR_CODE": "-1",
            "CGUARD_STATUS_VAR": "status",
            "CGUARD_CHECK_WINDOW": "8",
        })
        assert config.error_code == "-1"
        assert config.status_var == "status"
        assert config.out_param == "out"
        assert config.check_window == 8

    def test_from_env_empty(self):
        """Test an empty environment gives the defaults"""
        assert RewriteConfig.from_env({}) == DEFAULT_CONFIG

    def test_from_env_bad_window(self):
        """Test a non-integer window"""
        with pytest.raises(ParseError, match="CGUARD_CHECK_WINDOW"):
            RewriteConfig.from_env({"CGUARD_CHECK_WINDOW": "wide"})

    def test_override_ignores_none(self):
        """Test None leaves a field unchanged"""
        config = DEFAULT_CONFIG.override(error_code=None, out_param="result")
        assert config.error_code == "ENOMEM"
        assert config.out_param == "result"
        assert DEFAULT_CONFIG.out_param == "out"

    def test_override_nothing_returns_same(self):
        """Test an empty override is the identity"""
        assert DEFAULT_CONFIG.override(status_var=None) is DEFAULT_CONFIG

    def test_invalid_values(self):
        """Test validation on construction"""
        with pytest.raises(ParseError):
            RewriteConfig(check_window=-1)
        with pytest.raises(ParseError):
            RewriteConfig(status_var="")


class TestErrors:
    """Error codes and formatting"""

    def test_errno_codes(self):
        """Test each error maps to an errno value"""
        assert ParseError("x").errno == errno.EINVAL
        assert SourceIOError("x").errno == errno.EIO

    def test_hierarchy(self):
        """Test all errors derive from CguardError"""
        assert issubclass(ParseError, CguardError)
        assert issubclass(ParseError, ValueError)
        assert issubclass(SourceIOError, CguardError)

    def test_position_in_message(self):
        """Test the offset is appended when known"""
        assert str(ParseError("bad token", pos=7)) == "bad token (at offset 7)"
        assert str(ParseError("bad token")) == "bad token"
