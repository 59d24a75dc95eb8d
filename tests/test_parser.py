"""
Tests for the lexer, the line parser and source rendering.
"""

import pytest

from errors import MuRustParseError
from lexer import Lexer
from memory import ISIZE_MAX, ISIZE_MIN, UNIT, bool_value, int_value
from parser import (
    AddressOf,
    BinaryOp,
    BinOp,
    Block,
    Conditional,
    Const,
    Deref,
    Dereference,
    Drop,
    ExpressionStatement,
    Free,
    Identifier,
    IfElse,
    LeftDeref,
    LeftIdentifier,
    Let,
    NewPointer,
    While,
    Write,
    parse_instruction,
)


def parse_expr(text):
    instruction = parse_instruction(text)
    assert isinstance(instruction, ExpressionStatement)
    return instruction.expression


class TestLexer:
    def test_token_types(self):
        tokens = Lexer("let mut x = 10 <= y && z", "<test>").tokenize()
        assert [t.type for t in tokens] == ["LET", "MUT", "IDENT", "EQUALS", "NUMBER", "LEQ", "IDENT", "ANDAND", "IDENT", "EOF"]

    def test_positions(self):
        tokens = Lexer("a\n  b", "<test>").tokenize()
        assert (tokens[1].line, tokens[1].column) == (2, 3)

    def test_comment_is_skipped(self):
        tokens = Lexer("x // trailing words", "<test>").tokenize()
        assert [t.type for t in tokens] == ["IDENT", "EOF"]

    def test_unexpected_character(self):
        with pytest.raises(MuRustParseError):
            Lexer("x @ y", "<test>").tokenize()

    def test_number_glued_to_letters(self):
        with pytest.raises(MuRustParseError):
            Lexer("12ab", "<test>").tokenize()


class TestInstructions:
    def test_let(self):
        assert parse_instruction("let mut k = 0") == Let(name="k", mutable=True, expression=Const(int_value(0)))
        assert parse_instruction("let i = true;") == Let(name="i", mutable=False, expression=Const(bool_value(True)))

    def test_block(self):
        instruction = parse_instruction("{ let i = 8; &i }")
        assert instruction == Block(instructions=[
            Let(name="i", mutable=False, expression=Const(int_value(8))),
            ExpressionStatement(AddressOf(Identifier("i"))),
        ])

    def test_empty_block_and_stray_semicolons(self):
        assert parse_instruction("{}") == Block(instructions=[])
        assert parse_instruction("{ 1;; 2; }") == Block(instructions=[
            ExpressionStatement(Const(int_value(1))),
            ExpressionStatement(Const(int_value(2))),
        ])

    def test_while(self):
        instruction = parse_instruction("while (k < 4) { k = k + 3 }")
        assert isinstance(instruction, While)
        assert instruction.condition == BinaryOp(Identifier("k"), BinOp.LT, Const(int_value(4)))
        assert instruction.body == Block(instructions=[
            Write(LeftIdentifier("k"), BinaryOp(Identifier("k"), BinOp.ADD, Const(int_value(3)))),
        ])

    def test_if_else(self):
        instruction = parse_instruction("if x { 1 } else { 2 }")
        assert isinstance(instruction, IfElse)
        assert instruction.condition == Identifier("x")
        assert instruction.else_branch == Block(instructions=[ExpressionStatement(Const(int_value(2)))])

    def test_if_without_else_gets_empty_block(self):
        instruction = parse_instruction("if true { 1 }")
        assert instruction.else_branch == Block(instructions=[])

    def test_write_targets(self):
        assert parse_instruction("x = 1") == Write(LeftIdentifier("x"), Const(int_value(1)))
        assert parse_instruction("*p = 3") == Write(LeftDeref(LeftIdentifier("p")), Const(int_value(3)))

    def test_equality_is_not_a_write(self):
        assert isinstance(parse_instruction("x == 1"), ExpressionStatement)

    def test_free_and_drop(self):
        assert parse_instruction("free x") == Free(LeftIdentifier("x"))
        assert parse_instruction("drop *x") == Drop(LeftDeref(LeftIdentifier("x")))

    def test_trailing_garbage(self):
        with pytest.raises(MuRustParseError):
            parse_instruction("let x = 1 2")

    def test_missing_name(self):
        with pytest.raises(MuRustParseError):
            parse_instruction("let = 3")

    def test_nesting_past_recursion_limit(self):
        with pytest.raises(MuRustParseError, match="nested too deeply"):
            parse_instruction("{" * 3000 + "}" * 3000)

    def test_unclosed_block(self):
        with pytest.raises(MuRustParseError):
            parse_instruction("{ let x = 1")


class TestExpressions:
    def test_literals(self):
        assert parse_expr("42") == Const(int_value(42))
        assert parse_expr("-5") == Const(int_value(-5))
        assert parse_expr("false") == Const(bool_value(False))
        assert parse_expr("()") == Const(UNIT)

    def test_isize_literal_limits(self):
        assert parse_expr(str(ISIZE_MAX)) == Const(int_value(ISIZE_MAX))
        assert parse_expr(str(ISIZE_MIN)) == Const(int_value(ISIZE_MIN))
        with pytest.raises(MuRustParseError):
            parse_expr(str(ISIZE_MAX + 1))

    def test_precedence(self):
        assert str(parse_expr("1 + 2 * 3")) == "(1 + (2 * 3))"
        assert str(parse_expr("(1 + 2) * 3")) == "((1 + 2) * 3)"
        assert str(parse_expr("10 - 4 - 3")) == "((10 - 4) - 3)"
        assert str(parse_expr("x == 0 || 1 / x == 1")) == "((x == 0) || ((1 / x) == 1))"
        assert str(parse_expr("a || b && c")) == "(a || (b && c))"

    def test_comparisons_do_not_chain(self):
        with pytest.raises(MuRustParseError):
            parse_expr("1 < 2 < 3")

    def test_conditional(self):
        expr = parse_expr("(x < 1) ? 1 : 2")
        assert expr == Conditional(
            BinaryOp(Identifier("x"), BinOp.LT, Const(int_value(1))),
            Const(int_value(1)),
            Const(int_value(2)),
        )
        assert str(expr) == "(x < 1) ? 1 : 2"
        assert str(parse_expr("b ? 1 : 2")) == "(b) ? 1 : 2"

    def test_pointer_forms(self):
        assert parse_expr("&i") == AddressOf(Identifier("i"))
        assert parse_expr("*p") == Dereference(LeftDeref(LeftIdentifier("p")))
        assert parse_expr("**p") == Dereference(LeftDeref(LeftDeref(LeftIdentifier("p"))))
        assert parse_expr("*(1 + 2)") == Deref(BinaryOp(Const(int_value(1)), BinOp.ADD, Const(int_value(2))))
        assert parse_expr("Box::new(5)") == NewPointer("Box", Const(int_value(5)))

    def test_pointer_rendering(self):
        assert str(parse_expr("**p")) == "**p"
        assert str(parse_expr("&i")) == "&i"
        assert str(parse_expr("Box::new(1 + 2)")) == "Box::new((1 + 2))"

    def test_unknown_box_constructor(self):
        with pytest.raises(MuRustParseError):
            parse_expr("Box::make(1)")

    def test_locations_are_recorded(self):
        expr = parse_expr("  x")
        assert expr.location.line == 1
        assert expr.location.column == 3
        assert expr.location.statement == "x"


class TestInstructionRendering:
    def test_round_trip_text(self):
        assert str(parse_instruction("let mut k = 0")) == "let mut k = 0"
        assert str(parse_instruction("while (k < 4) { k = k + 3 }")) == "while (k < 4) {k = (k + 3)}"
        assert str(parse_instruction("if b { 1 } else { 2 }")) == "if b {1} else {2}"
        assert str(parse_instruction("{ let i = 8; &i }")) == "{let i = 8; &i}"
        assert str(parse_instruction("free x")) == "free x"
