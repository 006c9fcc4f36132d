"""
Tests for the body rewriter: guards, call-site fix-ups and return statements.
"""

import pytest

from cguard.analysis.allocations import find_allocations
from cguard.config import RewriteConfig
from cguard.core import tokenize
from cguard.errors import ParseError
from cguard.rewriting import (
    PatchList, RefactorContext, RefactoredFunction, RefactorType,
    SignatureTransform, TransformType, rewrite_body,
)


VOID_A = RefactoredFunction("A", RefactorType.VOID_TO_INT)
PTR_B = RefactoredFunction("B", RefactorType.PTR_TO_INT_OUT, "char *")


def fix(body, functions=(), transform=None, with_sites=True, config=None):
    tokens = tokenize(body)
    sites = find_allocations(tokens) if with_sites else ()
    return rewrite_body(tokens, sites, RefactorContext(functions), transform, config=config)


class TestPassThrough:
    """Bodies with nothing to do are copied exactly"""

    def test_round_trip(self):
        """Test an untouched body is byte-identical"""
        body = "{\n  int x = 1; /* note */\n  foo(x);\n}"
        assert fix(body) == body

    def test_unrelated_context(self):
        """Test refactored functions that are never called"""
        body = "{\n  foo(1);\n}"
        assert fix(body, [VOID_A, PTR_B]) == body

    def test_checked_allocation_untouched(self):
        """Test a checked site needs no guard"""
        body = "{ char *p = malloc(1); if (!p) return; }"
        assert fix(body) == body

    def test_none_context(self):
        """Test a missing context means no call rewrites"""
        tokens = tokenize("{ A(); }")
        assert rewrite_body(tokens, (), None) == "{ A(); }"

    def test_none_tokens(self):
        """Test a missing token list"""
        with pytest.raises(ParseError):
            rewrite_body(None, (), None)


class TestGuards:
    """Checks injected after unchecked allocations"""

    def test_null_guard(self):
        """Test a malloc result gets a NULL check"""
        assert fix("{ char *p = malloc(10); *p = 5; }") == \
            "{ char *p = malloc(10); if (!p) { return ENOMEM; } *p = 5; }"

    def test_status_guard(self):
        """Test an asprintf status variable gets a negative check"""
        assert fix('{ char *s; int r = asprintf(&s, "x"); use(s); }') == \
            '{ char *s; int r = asprintf(&s, "x"); if (r < 0) { return ENOMEM; } use(s); }'

    def test_bare_status_call_wrapped(self):
        """Test a discarded asprintf status is tested in place"""
        assert fix('{ char *s; asprintf(&s, "x"); }') == \
            '{ char *s; if (asprintf(&s, "x") < 0) { return ENOMEM; } }'

    def test_braceless_statement(self):
        """Test braces are added around an unbraced if body"""
        assert fix("{ if (x) p = malloc(1); }") == \
            "{ if (x) { p = malloc(1); if (!p) { return ENOMEM; } } }"

    def test_realloc_self_assignment(self):
        """Test p = realloc(p, n) keeps p on failure"""
        assert fix("{ p = realloc(p, 100); }") == \
            "{ { void *_safe_tmp = realloc(p, 100); if (!_safe_tmp) return ENOMEM; p = _safe_tmp; } }"

    def test_realloc_into_other_variable(self):
        """Test q = realloc(p, n) gets an ordinary guard"""
        assert fix("{ q = realloc(p, 100); }") == \
            "{ q = realloc(p, 100); if (!q) { return ENOMEM; } }"

    def test_custom_error_code(self):
        """Test the error code comes from the config"""
        config = RewriteConfig(error_code="-1")
        assert fix("{ char *p = malloc(1); }", config=config) == \
            "{ char *p = malloc(1); if (!p) { return -1; } }"

    def test_discarded_pointer_not_guarded(self):
        """Test use(malloc(n)) has no variable to guard"""
        body = "{ use(malloc(4)); }"
        assert fix(body) == body


class TestStatusCalls:
    """Calls to functions that now return a status"""

    def test_statement_call(self):
        """Test A(); becomes a checked assignment"""
        assert fix("{ A(); }", [VOID_A]) == \
            "{\n  int rc = 0; rc = A(); if (rc != 0) return rc; }"

    def test_braceless_call(self):
        """Test an unbraced if body gets braces"""
        assert fix("{ if (x) A(); }", [VOID_A]) == \
            "{\n  int rc = 0; if (x) { rc = A(); if (rc != 0) return rc; } }"

    def test_custom_status_variable(self):
        """Test the status variable comes from the config"""
        config = RewriteConfig(status_var="err")
        assert fix("{ A(1); }", [VOID_A], config=config) == \
            "{\n  int err = 0; err = A(1); if (err != 0) return err; }"

    def test_member_call_untouched(self):
        """Test obj.A() is a different function"""
        body = "{ obj.A(); p->A(); }"
        assert fix(body, [VOID_A]) == body

    def test_local_prototype_untouched(self):
        """Test a block-scope declaration is not a call"""
        assert fix("{ void A(void); A(); }", [VOID_A]) == \
            "{\n  int rc = 0; void A(void); rc = A(); if (rc != 0) return rc; }"

    def test_case_label_calls(self):
        """Test calls after case and default labels are checked"""
        assert fix("{ switch (c) { case 1: A(); break; default: A(); } }", [VOID_A]) == (
            "{\n  int rc = 0; switch (c) { case 1: rc = A(); if (rc != 0) return rc; break; "
            "default: rc = A(); if (rc != 0) return rc; } }"
        )

    def test_goto_label_call(self):
        """Test a call after a goto target label is checked"""
        assert fix("{ again: A(); }", [VOID_A]) == \
            "{\n  int rc = 0; again: rc = A(); if (rc != 0) return rc; }"

    def test_value_use_untouched(self):
        """Test an int status used as a value keeps its value"""
        body = "{ int v = A(); use(v); }"
        assert fix(body, [VOID_A]) == body

    def test_existing_status_variable_reused(self):
        """Test a body already declaring rc gets no second declaration"""
        assert fix("{ int rc = 3; A(); }", [VOID_A]) == \
            "{ int rc = 3; rc = A(); if (rc != 0) return rc; }"


class TestOutParameterCalls:
    """Calls to functions whose value moved to an out-parameter"""

    def test_plain_assignment(self):
        """Test s = B(x);"""
        assert fix("{ char *s; s = B(x); use(s); }", [PTR_B]) == \
            "{\n  int rc = 0; char *s; rc = B(x, &s); if (rc != 0) return rc; use(s); }"

    def test_declaration(self):
        """Test char *s = B(...); splits the declaration"""
        assert fix('{ char *s = B("a"); }', [PTR_B]) == \
            '{\n  int rc = 0; char *s ; rc = B("a", &s); if (rc != 0) return rc; }'

    def test_no_arguments(self):
        """Test the out argument alone when the call had none"""
        assert fix("{ char *s = B(); }", [PTR_B]) == \
            "{\n  int rc = 0; char *s ; rc = B(&s); if (rc != 0) return rc; }"

    def test_discarded_result(self):
        """Test a discarded value lands in a scoped temporary"""
        assert fix("{ B(1); }", [PTR_B]) == \
            "{\n  int rc = 0; { char * _cguard_tmp0; rc = B(1, &_cguard_tmp0); if (rc != 0) return rc; } }"

    def test_nested_argument_hoisted(self):
        """Test a call used as an argument is evaluated first"""
        assert fix("{ use(B(1)); }", [PTR_B]) == (
            "{\n  int rc = 0; char * _cguard_tmp0; rc = B(1, &_cguard_tmp0); "
            "if (rc != 0) return rc; use(_cguard_tmp0); }"
        )

    def test_returned_value_hoisted(self):
        """Test return B(1); in a function keeping its signature"""
        assert fix("{ return B(1); }", [PTR_B]) == (
            "{\n  int rc = 0; char * _cguard_tmp0; rc = B(1, &_cguard_tmp0); "
            "if (rc != 0) return rc; return _cguard_tmp0; }"
        )

    def test_hoisted_after_label(self):
        """Test a hoisted temporary after a label is scoped in braces"""
        assert fix("{ again: use(B(1)); }", [PTR_B]) == (
            "{\n  int rc = 0; again: { char * _cguard_tmp0; rc = B(1, &_cguard_tmp0); "
            "if (rc != 0) return rc; use(_cguard_tmp0); } }"
        )

    def test_temporaries_are_numbered(self):
        """Test each hoisted call gets its own temporary"""
        out = fix("{ use(B(1), B(2)); }", [PTR_B])
        assert "_cguard_tmp0" in out
        assert "_cguard_tmp1" in out
        assert "use(_cguard_tmp0, _cguard_tmp1);" in out

    def test_condition_untouched(self):
        """Test calls inside if conditions are left alone"""
        body = "{ if (B(1)) x(); }"
        assert fix(body, [PTR_B]) == body

    def test_for_header_untouched(self):
        """Test calls inside a for header are left alone"""
        body = "{ for (s = B(1); s; s = 0) x(); }"
        assert fix(body, [PTR_B]) == body


class TestReturnRewrites:
    """The function's own return statements"""

    def test_void_returns(self):
        """Test return; gains a value and a final return is added"""
        transform = SignatureTransform(TransformType.VOID_TO_INT)
        assert fix("{ if (x) return; y(); }", transform=transform) == \
            "{ if (x) return 0; y(); return 0; }"

    def test_void_body_ending_in_return(self):
        """Test no duplicate return is appended"""
        transform = SignatureTransform(TransformType.VOID_TO_INT)
        assert fix("{ y(); return; }", transform=transform) == "{ y(); return 0; }"

    def test_void_empty_body(self):
        """Test an empty body still returns success"""
        transform = SignatureTransform(TransformType.VOID_TO_INT)
        assert fix("{ }", transform=transform) == "{ return 0; }"

    def test_pointer_return_to_out(self):
        """Test return p; stores through the out-parameter"""
        transform = SignatureTransform(TransformType.RET_PTR_TO_ARG, "char *")
        assert fix("{ char *p = strdup(s); return p; }", transform=transform) == \
            "{ char *p = strdup(s); if (!p) { return ENOMEM; } *out = p; return 0; }"

    def test_pointer_return_braceless(self):
        """Test an unbraced return gets braces"""
        transform = SignatureTransform(TransformType.RET_PTR_TO_ARG, "char *")
        assert fix("{ if (x) return a; return b; }", transform=transform) == \
            "{ if (x) { *out = a; return 0; } *out = b; return 0; }"

    def test_returned_allocation_checked(self):
        """Test return strdup(...) is checked before storing"""
        transform = SignatureTransform(TransformType.RET_PTR_TO_ARG, "char *")
        assert fix('{ return strdup("x"); }', transform=transform) == (
            '{ { char * _safe_ret = strdup("x"); if (!_safe_ret) return ENOMEM; '
            '*out = _safe_ret; return 0; } }'
        )

    def test_none_transform_keeps_returns(self):
        """Test NONE leaves return statements alone"""
        body = "{ return 1; }"
        assert fix(body, transform=SignatureTransform()) == body


class TestPatchList:
    """Patch ordering rules"""

    def test_insertions_keep_order(self):
        """Test insertions at one index render in the order added"""
        tokens = tokenize("a b")
        patches = PatchList()
        patches.insert(1, "1")
        patches.insert(1, "2")
        assert patches.apply(tokens) == "a12 b"

    def test_insertion_before_replacement(self):
        """Test an insertion precedes a replacement at the same index"""
        tokens = tokenize("a b")
        patches = PatchList()
        patches.replace(2, 3, "c")
        patches.insert(2, "[")
        assert patches.apply(tokens) == "a [c"

    def test_overlap_dropped(self):
        """Test a patch inside a replaced range is ignored"""
        tokens = tokenize("a b c")
        patches = PatchList()
        patches.replace(0, 3, "x")
        patches.insert(2, "y")
        assert patches.apply(tokens) == "x c"
