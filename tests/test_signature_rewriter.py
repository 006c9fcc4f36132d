"""
Tests for the signature rewriter.
"""

import pytest

from cguard.core import tokenize
from cguard.errors import ParseError
from cguard.rewriting import parse_signature, rewrite_signature


def rewrite(header, **kwargs):
    return rewrite_signature(tokenize(header), **kwargs)


class TestVoidFunctions:
    """void functions start returning a status"""

    def test_empty_params(self):
        """Test void f()"""
        assert rewrite("void f()") == "int f()"

    def test_void_params(self):
        """Test void f(void)"""
        assert rewrite("void f(void)") == "int f(void)"

    def test_spacing_preserved(self):
        """Test whitespace around the name and params survives"""
        assert rewrite("void  f ( void )") == "int f ( void )"

    def test_storage_class_kept(self):
        """Test static inline stays in front"""
        assert rewrite("static inline void h()") == "static inline int h()"

    def test_array_param(self):
        """Test array parameters are copied verbatim"""
        assert rewrite("void process(int a[])") == "int process(int a[])"

    def test_function_pointer_param(self):
        """Test the first name followed by `(` is the function"""
        assert rewrite("void register_cb(void (*cb)(int))") == "int register_cb(void (*cb)(int))"


class TestPointerFunctions:
    """Value-returning functions move the value to an out-parameter"""

    def test_char_pointer(self):
        """Test char *f()"""
        assert rewrite("char *f()") == "int f(char * *out)"

    def test_spaced_pointer(self):
        """Test char * f()"""
        assert rewrite("char * f()") == "int f(char * *out)"

    def test_struct_value(self):
        """Test struct S f()"""
        assert rewrite("struct S f()") == "int f(struct S *out)"

    def test_void_params_replaced(self):
        """Test (void) becomes just the out-parameter"""
        assert rewrite("extern char *g(void)") == "extern int g(char * *out)"

    def test_existing_params(self):
        """Test the out-parameter is appended"""
        assert rewrite("int * sort(int a[10])") == "int sort(int a[10], int * *out)"

    def test_const_return(self):
        """Test qualifiers stay with the out type"""
        assert rewrite("const char *f()") == "int f(const char * *out)"

    def test_multiword_integer(self):
        """Test non-int integer types use an out-parameter"""
        assert rewrite("unsigned long long f()") == "int f(unsigned long long *out)"

    def test_custom_out_param(self):
        """Test the out-parameter name is configurable"""
        assert rewrite("char *f(void)", out_param="result") == "int f(char * *result)"

    def test_trailing_whitespace(self):
        """Test text after the parameter list is kept"""
        assert rewrite("char *f(void)\n") == "int f(char * *out)\n"


class TestAttributes:
    """Attributes ahead of the return type"""

    def test_cxx_attribute_void(self):
        """Test [[nodiscard]] void f()"""
        assert rewrite("[[nodiscard]] void f()") == "[[nodiscard]] int f()"

    def test_cxx_attribute_pointer(self):
        """Test [[maybe_unused]] int * f()"""
        assert rewrite("[[maybe_unused]] int * f()") == "[[maybe_unused]] int f(int * *out)"

    def test_gnu_attribute(self):
        """Test __attribute__((...)) with a storage class"""
        assert rewrite("__attribute__((unused)) static char *f(void)") == \
            "__attribute__((unused)) static int f(char * *out)"


class TestIntFunctions:
    """Functions already returning int are unchanged"""

    def test_int_unchanged(self):
        """Test int f(int x)"""
        assert rewrite("int f(int x)") == "int f(int x)"

    def test_implicit_int_unchanged(self):
        """Test a header without a return type"""
        assert rewrite("f(x)") == "f(x)"

    def test_rewrite_is_idempotent(self):
        """Test rewriting a rewritten header changes nothing"""
        once = rewrite("char *f()")
        assert rewrite(once) == once


class TestNestedDeclarators:
    """Headers whose name sits inside grouping parentheses"""

    def test_function_pointer_return_unchanged(self):
        """Test a function returning a function pointer is left alone"""
        header = "int (*get(void))(int)"
        assert rewrite(header) == header
        assert parse_signature(tokenize(header)).nested_declarator

    def test_plain_pointer_is_not_nested(self):
        """Test an ordinary pointer return"""
        assert not parse_signature(tokenize("char *dup(const char *s)")).nested_declarator


class TestKnRDefinitions:
    """Old-style parameter declarations"""

    def test_void_kr(self):
        """Test void f(a) int a;"""
        assert rewrite("void f(a) int a;") == "int f(a) int a;"

    def test_pointer_kr(self):
        """Test the out-parameter joins the identifier list"""
        assert rewrite("char *f(a) int a;") == "int f(a, out) int a; char * *out;"

    def test_pointer_kr_multiple(self):
        """Test several declarations"""
        assert rewrite("struct S *f(x, y) int x; double y;") == \
            "int f(x, y, out) int x; double y; struct S * *out;"

    def test_pointer_kr_empty_list(self):
        """Test an empty identifier list"""
        assert rewrite("char *f() int x;") == "int f(out) int x; char * *out;"


class TestParseSignature:
    """Header decomposition"""

    def test_parts(self):
        """Test each piece of a header"""
        parts = parse_signature(tokenize("static char *dup(const char *s)"))
        assert parts.prefix == "static "
        assert parts.return_type == "char *"
        assert parts.name == "dup"
        assert parts.params == "const char *s"
        assert not parts.returns_void
        assert not parts.returns_int
        assert not parts.is_kr

    def test_parts_reassemble(self):
        """Test the parts reproduce the header"""
        header = "extern  struct S * make (int n) "
        parts = parse_signature(tokenize(header))
        rebuilt = (parts.prefix + parts.return_type + parts.name_text + "(" +
                   parts.params + ")" + parts.kr_decls + parts.trailing)
        assert rebuilt == header

    def test_no_paren(self):
        """Test a declaration without a parameter list"""
        with pytest.raises(ParseError, match="no '\\('"):
            rewrite("int x;")

    def test_no_name(self):
        """Test a parameter list without a name"""
        with pytest.raises(ParseError, match="no function name"):
            rewrite("(void)")

    def test_unbalanced(self):
        """Test an unclosed parameter list"""
        with pytest.raises(ParseError, match="unbalanced"):
            rewrite("void f(int a")

    def test_none_tokens(self):
        """Test a missing token list"""
        with pytest.raises(ParseError):
            rewrite_signature(None)
