from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from errors import MuRustParseError
from lexer import Lexer, Token
from memory import ISIZE_MAX, ISIZE_MIN, UNIT, Value, bool_value, int_value


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


class Node:
    pass


class BinOp(Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    LEQ = "<="
    GEQ = ">="
    LT = "<"
    GT = ">"
    EQ = "=="
    NEQ = "!="
    AND = "&&"
    OR = "||"

    def __str__(self) -> str:
        return self.value


# ---- Place expressions (assignable locations) ----

class LeftExpression(Node):
    pass


@dataclass
class LeftIdentifier(LeftExpression):
    name: str
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return self.name


@dataclass
class LeftDeref(LeftExpression):
    target: LeftExpression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"*{self.target}"


# ---- Expressions ----

class Expression(Node):
    pass


@dataclass
class Const(Expression):
    value: Value
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return str(self.value)


@dataclass
class Identifier(Expression):
    name: str
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return self.name


@dataclass
class BinaryOp(Expression):
    left: Expression
    op: BinOp
    right: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"({self.left} {self.op} {self.right})"


@dataclass
class Conditional(Expression):
    condition: Expression
    if_true: Expression
    if_false: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        cond = str(self.condition)
        if not isinstance(self.condition, BinaryOp):
            cond = f"({cond})"
        return f"{cond} ? {self.if_true} : {self.if_false}"


@dataclass
class Dereference(Expression):
    """Read of a place: a bare identifier, or a chain of ``*`` over one."""

    target: LeftExpression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return str(self.target)


@dataclass
class NewPointer(Expression):
    kind: str
    expression: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"{self.kind}::new({self.expression})"


@dataclass
class Deref(Expression):
    expression: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"*{self.expression}"


@dataclass
class AddressOf(Expression):
    expression: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"&{self.expression}"


# ---- Instructions ----

class Instruction(Node):
    pass


@dataclass
class ExpressionStatement(Instruction):
    expression: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return str(self.expression)


@dataclass
class Let(Instruction):
    name: str
    mutable: bool
    expression: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        if self.mutable:
            return f"let mut {self.name} = {self.expression}"
        return f"let {self.name} = {self.expression}"


@dataclass
class Block(Instruction):
    instructions: List[Instruction]
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return "{" + "; ".join(str(instr) for instr in self.instructions) + "}"


@dataclass
class IfElse(Instruction):
    condition: Expression
    then_branch: Instruction
    else_branch: Instruction
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"if {self.condition} {self.then_branch} else {self.else_branch}"


@dataclass
class Write(Instruction):
    target: LeftExpression
    expression: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"{self.target} = {self.expression}"


@dataclass
class While(Instruction):
    condition: Expression
    body: Instruction
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"while {self.condition} {self.body}"


@dataclass
class Free(Instruction):
    target: LeftExpression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"free {self.target}"


@dataclass
class Drop(Instruction):
    target: LeftExpression
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"drop {self.target}"


COMPARISON_OPS = {
    "EQEQ": BinOp.EQ,
    "NEQ": BinOp.NEQ,
    "LEQ": BinOp.LEQ,
    "GEQ": BinOp.GEQ,
    "LT": BinOp.LT,
    "GT": BinOp.GT,
}

SUM_OPS = {"PLUS": BinOp.ADD, "MINUS": BinOp.SUB}

TERM_OPS = {"STAR": BinOp.MUL, "SLASH": BinOp.DIV, "PERCENT": BinOp.MOD}


class Parser:
    """Recursive-descent parser producing a single instruction per input line."""

    def __init__(self, tokens: List[Token], filename: str, source_lines: List[str]):
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines
        self.index = 0

    def parse(self) -> Instruction:
        instruction = self._parse_instruction()
        self._match("SEMI")
        token = self._peek()
        if token.type != "EOF":
            raise MuRustParseError(
                f"Unexpected token {token.type} after instruction at {self._where(token)}"
            )
        return instruction

    def _parse_instruction(self) -> Instruction:
        token = self._peek()
        if token.type == "LET":
            return self._parse_let()
        if token.type == "LBRACE":
            return self._parse_block()
        if token.type == "IF":
            return self._parse_if()
        if token.type == "WHILE":
            return self._parse_while()
        if token.type == "FREE":
            keyword = self._consume("FREE")
            return Free(target=self._parse_place(), location=self._location_from_token(keyword))
        if token.type == "DROP":
            keyword = self._consume("DROP")
            return Drop(target=self._parse_place(), location=self._location_from_token(keyword))
        if self._looks_like_write():
            return self._parse_write()
        expr: Expression = self._parse_expression()
        return ExpressionStatement(expression=expr, location=expr.location)

    def _parse_let(self) -> Let:
        keyword = self._consume("LET")
        mutable = self._match("MUT")
        name = self._consume("IDENT")
        self._consume("EQUALS")
        expr = self._parse_expression()
        return Let(name=name.value, mutable=mutable, expression=expr, location=self._location_from_token(keyword))

    def _parse_block(self) -> Block:
        start = self._consume("LBRACE")
        instructions: List[Instruction] = []
        while self._peek().type != "RBRACE":
            if self._match("SEMI"):
                continue
            instructions.append(self._parse_instruction())
            if self._peek().type != "RBRACE":
                self._consume("SEMI")
        self._consume("RBRACE")
        return Block(instructions=instructions, location=self._location_from_token(start))

    def _parse_if(self) -> IfElse:
        keyword = self._consume("IF")
        condition = self._parse_expression()
        then_branch = self._parse_instruction()
        if self._match("ELSE"):
            else_branch = self._parse_instruction()
        else:
            else_branch = Block(instructions=[], location=self._location_from_token(keyword))
        return IfElse(
            condition=condition,
            then_branch=then_branch,
            else_branch=else_branch,
            location=self._location_from_token(keyword),
        )

    def _parse_while(self) -> While:
        keyword = self._consume("WHILE")
        condition = self._parse_expression()
        body = self._parse_instruction()
        return While(condition=condition, body=body, location=self._location_from_token(keyword))

    def _parse_write(self) -> Write:
        start = self._peek()
        target = self._parse_place()
        self._consume("EQUALS")
        expr = self._parse_expression()
        return Write(target=target, expression=expr, location=self._location_from_token(start))

    def _parse_place(self) -> LeftExpression:
        token = self._peek()
        if self._match("STAR"):
            return LeftDeref(target=self._parse_place(), location=self._location_from_token(token))
        name = self._consume("IDENT")
        return LeftIdentifier(name=name.value, location=self._location_from_token(name))

    def _looks_like_write(self) -> bool:
        i = self.index
        tokens = self.tokens
        while tokens[i].type == "STAR":
            i += 1
        if tokens[i].type != "IDENT":
            return False
        return tokens[i + 1].type == "EQUALS"

    def _parse_expression(self) -> Expression:
        expr = self._parse_or()
        if self._peek().type == "QUESTION":
            question = self._consume("QUESTION")
            if_true = self._parse_expression()
            self._consume("COLON")
            if_false = self._parse_expression()
            return Conditional(
                condition=expr,
                if_true=if_true,
                if_false=if_false,
                location=self._location_from_token(question),
            )
        return expr

    def _parse_or(self) -> Expression:
        expr = self._parse_and()
        while self._peek().type == "OROR":
            op = self._consume("OROR")
            expr = BinaryOp(left=expr, op=BinOp.OR, right=self._parse_and(), location=self._location_from_token(op))
        return expr

    def _parse_and(self) -> Expression:
        expr = self._parse_comparison()
        while self._peek().type == "ANDAND":
            op = self._consume("ANDAND")
            expr = BinaryOp(left=expr, op=BinOp.AND, right=self._parse_comparison(), location=self._location_from_token(op))
        return expr

    def _parse_comparison(self) -> Expression:
        expr = self._parse_sum()
        token = self._peek()
        if token.type in COMPARISON_OPS:
            self.index += 1
            right = self._parse_sum()
            expr = BinaryOp(left=expr, op=COMPARISON_OPS[token.type], right=right, location=self._location_from_token(token))
            if self._peek().type in COMPARISON_OPS:
                raise MuRustParseError(
                    f"Comparison operators cannot be chained at {self._where(self._peek())}"
                )
        return expr

    def _parse_sum(self) -> Expression:
        expr = self._parse_term()
        while self._peek().type in SUM_OPS:
            token = self._peek()
            self.index += 1
            expr = BinaryOp(left=expr, op=SUM_OPS[token.type], right=self._parse_term(), location=self._location_from_token(token))
        return expr

    def _parse_term(self) -> Expression:
        expr = self._parse_unary()
        while self._peek().type in TERM_OPS:
            token = self._peek()
            self.index += 1
            expr = BinaryOp(left=expr, op=TERM_OPS[token.type], right=self._parse_unary(), location=self._location_from_token(token))
        return expr

    def _parse_unary(self) -> Expression:
        token = self._peek()
        if token.type == "STAR":
            self._consume("STAR")
            operand = self._parse_unary()
            place = self._as_place(operand)
            if place is not None:
                return Dereference(target=LeftDeref(target=place), location=self._location_from_token(token))
            return Deref(expression=operand, location=self._location_from_token(token))
        if token.type == "AMP":
            self._consume("AMP")
            return AddressOf(expression=self._parse_unary(), location=self._location_from_token(token))
        if token.type == "MINUS":
            self._consume("MINUS")
            number = self._consume("NUMBER")
            return Const(value=self._int_literal("-" + number.value, number), location=self._location_from_token(token))
        return self._parse_primary()

    def _parse_primary(self) -> Expression:
        token = self._peek()
        location = self._location_from_token(token)
        if token.type == "NUMBER":
            self._consume("NUMBER")
            return Const(value=self._int_literal(token.value, token), location=location)
        if token.type == "TRUE":
            self._consume("TRUE")
            return Const(value=bool_value(True), location=location)
        if token.type == "FALSE":
            self._consume("FALSE")
            return Const(value=bool_value(False), location=location)
        if token.type == "LPAREN":
            self._consume("LPAREN")
            if self._match("RPAREN"):
                return Const(value=UNIT, location=location)
            expr = self._parse_expression()
            self._consume("RPAREN")
            return expr
        if token.type == "IDENT":
            self._consume("IDENT")
            if token.value == "Box" and self._match("COLONCOLON"):
                method = self._consume("IDENT")
                if method.value != "new":
                    raise MuRustParseError(f"Unknown constructor 'Box::{method.value}' at {self._where(method)}")
                self._consume("LPAREN")
                inner = self._parse_expression()
                self._consume("RPAREN")
                return NewPointer(kind="Box", expression=inner, location=location)
            return Identifier(name=token.value, location=location)
        raise MuRustParseError(f"Unexpected token {token.type} in expression at {self._where(token)}")

    def _as_place(self, expr: Expression) -> Optional[LeftExpression]:
        if isinstance(expr, Identifier):
            return LeftIdentifier(name=expr.name, location=expr.location)
        if isinstance(expr, Dereference):
            return expr.target
        return None

    def _int_literal(self, text: str, token: Token) -> Value:
        value = int(text)
        if value < ISIZE_MIN or value > ISIZE_MAX:
            raise MuRustParseError(f"Integer literal {text} out of range at {self._where(token)}")
        return int_value(value)

    def _consume(self, token_type: str) -> Token:
        token = self._peek()
        if token.type != token_type:
            raise MuRustParseError(f"Expected token {token_type} but found {token.type} at {self._where(token)}")
        self.index += 1
        return token

    def _match(self, token_type: str) -> bool:
        if self._peek().type == token_type:
            self.index += 1
            return True
        return False

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _where(self, token: Token) -> str:
        return f"{self.filename}:{token.line}:{token.column}"

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_index = token.line - 1
        statement = ""
        if 0 <= line_index < len(self.source_lines):
            statement = self.source_lines[line_index].strip()
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=statement)


def parse_instruction(text: str, filename: str = "<string>") -> Instruction:
    lexer = Lexer(text, filename)
    tokens = lexer.tokenize()
    parser = Parser(tokens, filename, text.splitlines())
    try:
        return parser.parse()
    except RecursionError:
        raise MuRustParseError("Instruction is nested too deeply to parse") from None
