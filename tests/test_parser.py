import pytest

from qedcfg.errors import ExpressionSyntaxError
from qedcfg.nodes import BinOp, Call, Name, Number, UnaryOp, UnitLiteral
from qedcfg.parser import parse, tokenize


def test_tokenize_keeps_exponent_in_number():
    kinds = [(t.kind, t.text) for t in tokenize("1.5e9 * e")]
    assert kinds == [("NUMBER", "1.5e9"), ("OP", "*"), ("NAME", "e")]


def test_precedence_and_names():
    expr = parse("16.5 * GeV / (me * c^2)")
    assert expr.names == frozenset({"GeV", "me", "c"})
    root = expr.root
    assert isinstance(root, BinOp) and root.op == "/"
    assert root.left == BinOp("*", Number(16.5), Name("GeV"))
    assert root.right == BinOp("*", Name("me"), BinOp("^", Name("c"), Number(2.0)))


def test_power_is_right_associative():
    assert parse("2^3^2").root == BinOp("^", Number(2.0), BinOp("^", Number(3.0), Number(2.0)))


def test_unary_minus_binds_tighter_than_power():
    assert parse("-2^2").root == BinOp("^", UnaryOp("-", Number(2.0)), Number(2.0))


def test_number_then_name_is_unit_literal():
    assert parse("0.5 micro").root == UnitLiteral(0.5, "micro")


def test_juxtaposition_multiplies():
    assert parse("a b").root == BinOp("*", Name("a"), Name("b"))
    assert parse("2 (a + b)").root == BinOp("*", Number(2.0), BinOp("+", Name("a"), Name("b")))


def test_function_call_and_arity():
    assert parse("atan2(y, x)").root == Call("atan2", (Name("y"), Name("x")))
    with pytest.raises(ExpressionSyntaxError, match="expects 2"):
        parse("atan2(y)")


def test_name_followed_by_spaced_paren_is_product():
    assert parse("a (b)").root == BinOp("*", Name("a"), Name("b"))


@pytest.mark.parametrize("text, fragment", [
    ("foo(2)", "foo"),
    ("2 * (3 + 4", "("),
    ("2 * 3)", ")"),
    ("1 2", "2"),
    ("3 $ 4", "$"),
    ("sqrt", "sqrt"),
])
def test_syntax_errors_carry_fragment(text, fragment):
    with pytest.raises(ExpressionSyntaxError) as ei:
        parse(text)
    assert ei.value.fragment == fragment
    assert ei.value.text == text


def test_empty_and_trailing_operator():
    with pytest.raises(ExpressionSyntaxError):
        parse("   ")
    with pytest.raises(ExpressionSyntaxError) as ei:
        parse("1 +")
    assert ei.value.position == len("1 +")


def test_non_string_is_rejected():
    with pytest.raises(ExpressionSyntaxError):
        parse(1.0)
