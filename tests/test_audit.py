"""
Tests for the project audit and the source file layer.
"""

import tempfile
from pathlib import Path

import pytest

from cguard.analysis import AuditStats, audit_paths, audit_source
from cguard.errors import SourceIOError
from cguard.sources import iter_c_files, read_source, write_source
from cguard.specs import AllocatorSpec, DEFAULT_REGISTRY


class TestAuditSource:
    """Counting allocation sites in one translation unit"""

    def test_counts(self):
        """Test each category is counted once"""
        stats = audit_source(
            "void f() { char *p = malloc(1); *p = 0; char *q = calloc(1, 1); }\n"
            "void g() { char *r = malloc(1); if (!r) return; }\n"
            'char *h() { return strdup("x"); }\n'
        )
        assert stats.files_scanned == 1
        assert stats.allocations_checked == 1
        assert stats.allocations_unchecked == 2
        assert stats.used_before_check == 1
        assert stats.functions_returning_alloc == 1
        assert stats.total_allocations == 3

    def test_custom_registry(self):
        """Test project allocators are counted"""
        registry = DEFAULT_REGISTRY.with_allocators(AllocatorSpec("xalloc"))
        stats = audit_source("void f() { char *p = xalloc(1); }", registry)
        assert stats.allocations_unchecked == 1

    def test_addition(self):
        """Test stats sum field by field"""
        total = AuditStats(1, 2, 3, 0, 1) + AuditStats(1, 0, 1, 1, 0)
        assert total == AuditStats(2, 2, 4, 1, 1)
        assert total.to_dict()["allocations_unchecked"] == 4


class TestAuditPaths:
    """Auditing files and directories"""

    def test_directory_recursion(self):
        """Test nested .c files are found and summed"""
        with tempfile.TemporaryDirectory() as tmp:
            sub = Path(tmp) / "src"
            sub.mkdir()
            (sub / "a.c").write_text("void f() { char *p = malloc(1); }\n")
            (Path(tmp) / "b.c").write_text("void g() { char *q = malloc(1); if (!q) return; }\n")
            (Path(tmp) / "c.h").write_text("void h() { malloc(1); }\n")
            stats = audit_paths([tmp])

        assert stats.files_scanned == 2
        assert stats.allocations_unchecked == 1
        assert stats.allocations_checked == 1

    def test_missing_path(self):
        """Test a missing path raises SourceIOError"""
        with pytest.raises(SourceIOError):
            audit_paths(["/nonexistent/dir"])


class TestSourceFiles:
    """Reading and writing sources"""

    def test_iter_sorted(self):
        """Test directory contents come back sorted"""
        with tempfile.TemporaryDirectory() as tmp:
            for name in ("b.c", "a.c", "z.txt"):
                (Path(tmp) / name).write_text("")
            names = [p.name for p in iter_c_files([tmp])]
        assert names == ["a.c", "b.c"]

    def test_round_trip_bytes(self):
        """Test non-UTF-8 bytes survive a read/write cycle"""
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "latin1.c"
            raw = b"/* caf\xe9 */\r\nint x;\r\n"
            path.write_bytes(raw)
            write_source(path, read_source(path))
            assert path.read_bytes() == raw

    def test_read_missing(self):
        """Test reading a missing file"""
        with pytest.raises(SourceIOError):
            read_source("/nonexistent/file.c")
