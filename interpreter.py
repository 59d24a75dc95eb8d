from __future__ import annotations
import json
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Tuple

from errors import (
    DivisionByZero,
    EvalError,
    IntegerOverflow,
    NotImplementedFeature,
    TypeMismatch,
    UndefinedOperation,
    UnsupportedOperation,
)
from memory import (
    TYPE_BOOL,
    TYPE_INT,
    UNIT,
    Address,
    Value,
    bool_value,
    fits_isize,
    int_value,
    pointer_value,
)
from namespace import NameSpaceStack
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
    Expression,
    ExpressionStatement,
    Free,
    Identifier,
    IfElse,
    Instruction,
    LeftIdentifier,
    Let,
    NewPointer,
    Node,
    SourceLocation,
    While,
    Write,
)


# Bound on retained step-log entries; long loops would otherwise grow it without limit.
STATE_LOG_LIMIT = 10000

_ARITHMETIC_OPS = {BinOp.ADD, BinOp.SUB, BinOp.MUL, BinOp.DIV, BinOp.MOD}
_RELATIONAL_OPS = {BinOp.LEQ, BinOp.GEQ, BinOp.LT, BinOp.GT}


def _trunc_div(a: int, b: int) -> int:
    # Python's // floors; machine division truncates toward zero.
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _trunc_mod(a: int, b: int) -> int:
    return a - b * _trunc_div(a, b)


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    rule: str
    source_location: Optional[SourceLocation]
    statement: Optional[str]
    scope_snapshot: Optional[List[Dict[str, str]]]


class StateLogger:
    def __init__(self, verbose: bool, limit: int = STATE_LOG_LIMIT) -> None:
        self.verbose = verbose
        self.entries: Deque[StateEntry] = deque(maxlen=limit)
        self.next_state_index = 0

    def record(
        self,
        *,
        rule: str,
        location: Optional[SourceLocation],
        statement: Optional[str],
        scope_snapshot: Optional[List[Dict[str, str]]] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            rule=rule,
            source_location=location,
            statement=statement,
            scope_snapshot=scope_snapshot,
        )
        self.entries.append(entry)
        self.next_state_index += 1
        return entry

    def last_entry(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None


class Interpreter:
    """Evaluates instructions against a scope stack passed in by the caller.

    The interpreter itself holds no program state: bindings live in the
    NameSpaceStack, which every evaluation method receives explicitly.
    """

    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose = verbose
        self.logger = StateLogger(verbose=verbose)
        self.logger.record(rule="SEED", location=None, statement="<seed>")

    def execute(self, instruction: Instruction, nss: NameSpaceStack) -> Tuple[Optional[str], Value]:
        """Run one parsed line. Returns the bound name (for ``let``) and the resulting value."""
        try:
            return self._execute_instruction(instruction, nss)
        except EvalError as error:
            last = self.logger.last_entry()
            if last is not None:
                error.step_index = last.step_index
            raise
        except RecursionError:
            raise EvalError("Instruction is nested too deeply to evaluate", rule="internal")

    # ---- instructions ----

    def _execute_instruction(self, instruction: Instruction, nss: NameSpaceStack) -> Tuple[Optional[str], Value]:
        self._log_step(instruction, nss)
        if isinstance(instruction, ExpressionStatement):
            return None, self._evaluate_expression(instruction.expression, nss)
        if isinstance(instruction, Let):
            value = self._evaluate_expression(instruction.expression, nss)
            nss.declare(instruction.name, instruction.mutable, value)
            return instruction.name, value
        if isinstance(instruction, Block):
            return None, self._execute_block(instruction, nss)
        if isinstance(instruction, Write):
            value = self._evaluate_expression(instruction.expression, nss)
            if not isinstance(instruction.target, LeftIdentifier):
                raise UnsupportedOperation("WriteAt")
            nss.set(instruction.target.name, value)
            return None, value
        if isinstance(instruction, IfElse):
            flag = self._evaluate_expression(instruction.condition, nss).to_bool()
            if flag is None:
                raise UndefinedOperation("IfElse")
            branch = instruction.then_branch if flag else instruction.else_branch
            return self._execute_instruction(branch, nss)
        if isinstance(instruction, While):
            self._execute_while(instruction, nss)
            return None, UNIT
        if isinstance(instruction, Free):
            raise NotImplementedFeature("Free")
        if isinstance(instruction, Drop):
            raise NotImplementedFeature("Drop")
        raise UnsupportedOperation(type(instruction).__name__)

    def _execute_block(self, block: Block, nss: NameSpaceStack) -> Value:
        result = UNIT
        with nss.scope():
            for instruction in block.instructions:
                _, value = self._execute_instruction(instruction, nss)
                # Inside a block a declaration is a statement: it contributes unit.
                result = UNIT if isinstance(instruction, Let) else value
        return result

    def _execute_while(self, statement: While, nss: NameSpaceStack) -> None:
        # The body's value is discarded; a loop always yields unit.
        eval_expr = self._evaluate_expression
        while True:
            flag = eval_expr(statement.condition, nss).to_bool()
            if flag is None:
                raise UndefinedOperation("While")
            if not flag:
                return
            self._execute_instruction(statement.body, nss)

    # ---- expressions ----

    def _evaluate_expression(self, expression: Expression, nss: NameSpaceStack) -> Value:
        if isinstance(expression, Const):
            return expression.value
        if isinstance(expression, Identifier):
            return nss.find(expression.name)
        if isinstance(expression, BinaryOp):
            return self._evaluate_binary(expression, nss)
        if isinstance(expression, Conditional):
            flag = self._evaluate_expression(expression.condition, nss).to_bool()
            if flag is None:
                raise UndefinedOperation("Conditional")
            branch = expression.if_true if flag else expression.if_false
            return self._evaluate_expression(branch, nss)
        if isinstance(expression, Dereference):
            if isinstance(expression.target, LeftIdentifier):
                return nss.find(expression.target.name)
            raise NotImplementedFeature("Pointer dereference")
        if isinstance(expression, Deref):
            raise NotImplementedFeature("Pointer dereference")
        if isinstance(expression, NewPointer):
            raise NotImplementedFeature("Heap allocation")
        if isinstance(expression, AddressOf):
            return pointer_value(self._evaluate_address(expression.expression, nss))
        raise UnsupportedOperation(type(expression).__name__)

    def _evaluate_address(self, target: Expression, nss: NameSpaceStack) -> Address:
        if isinstance(target, Identifier):
            return nss.get_address(target.name)
        if isinstance(target, Dereference):
            if isinstance(target.target, LeftIdentifier):
                return nss.get_address(target.target.name)
            raise NotImplementedFeature("Pointer dereference")
        if isinstance(target, Deref):
            raise NotImplementedFeature("Pointer dereference")
        raise UnsupportedOperation("AddressOf")

    def _evaluate_int(self, expression: Expression, nss: NameSpaceStack) -> int:
        value = self._evaluate_expression(expression, nss)
        number = value.to_int()
        if number is None:
            raise TypeMismatch(expression, TYPE_INT, value.type)
        return number

    def _evaluate_binary(self, expression: BinaryOp, nss: NameSpaceStack) -> Value:
        op = expression.op
        if op in _ARITHMETIC_OPS:
            a = self._evaluate_int(expression.left, nss)
            b = self._evaluate_int(expression.right, nss)
            return int_value(self._arithmetic(expression, op, a, b))
        if op in _RELATIONAL_OPS:
            a = self._evaluate_int(expression.left, nss)
            b = self._evaluate_int(expression.right, nss)
            if op is BinOp.LEQ:
                return bool_value(a <= b)
            if op is BinOp.GEQ:
                return bool_value(a >= b)
            if op is BinOp.LT:
                return bool_value(a < b)
            return bool_value(a > b)
        if op is BinOp.EQ or op is BinOp.NEQ:
            return self._evaluate_equality(expression, nss)
        if op is BinOp.AND:
            return self._evaluate_and(expression, nss)
        if op is BinOp.OR:
            return self._evaluate_or(expression, nss)
        raise UnsupportedOperation(str(op))

    def _arithmetic(self, expression: BinaryOp, op: BinOp, a: int, b: int) -> int:
        if op is BinOp.ADD:
            result = a + b
        elif op is BinOp.SUB:
            result = a - b
        elif op is BinOp.MUL:
            result = a * b
        else:
            if b == 0:
                raise DivisionByZero(expression.right)
            result = _trunc_div(a, b) if op is BinOp.DIV else _trunc_mod(a, b)
        if not fits_isize(result):
            raise IntegerOverflow(expression)
        return result

    def _evaluate_equality(self, expression: BinaryOp, nss: NameSpaceStack) -> Value:
        left = self._evaluate_expression(expression.left, nss)
        right = self._evaluate_expression(expression.right, nss)
        same = left.type == right.type
        if same and left.type in (TYPE_INT, TYPE_BOOL):
            equal = left.value == right.value
            return bool_value(equal if expression.op is BinOp.EQ else not equal)
        if not same and {left.type, right.type} == {TYPE_INT, TYPE_BOOL}:
            # The left operand fixes the expected kind, so the right one is the
            # non-conforming side and is the one reported, never the left.
            raise TypeMismatch(expression.right, left.type, right.type)
        raise UndefinedOperation("Eq" if expression.op is BinOp.EQ else "Neq")

    def _evaluate_and(self, expression: BinaryOp, nss: NameSpaceStack) -> Value:
        # Both sides are always evaluated; a definite false wins over a non-boolean.
        left = self._evaluate_expression(expression.left, nss).to_bool()
        right = self._evaluate_expression(expression.right, nss).to_bool()
        if left is True and right is True:
            return bool_value(True)
        if left is False or right is False:
            return bool_value(False)
        raise UndefinedOperation("And")

    def _evaluate_or(self, expression: BinaryOp, nss: NameSpaceStack) -> Value:
        left = self._evaluate_expression(expression.left, nss).to_bool()
        if left is True:
            return bool_value(True)
        right = self._evaluate_expression(expression.right, nss).to_bool()
        # Anything other than a definite true, non-booleans included, reads as false.
        return bool_value(right is True)

    def _log_step(self, node: Node, nss: NameSpaceStack) -> None:
        location: Optional[SourceLocation] = getattr(node, "location", None)
        if self.verbose:
            statement: Optional[str] = str(node)
            snapshot = nss.snapshot()
        else:
            # Rendering a node walks its whole subtree; reuse the source line instead.
            statement = location.statement if location is not None else None
            snapshot = None
        self.logger.record(
            rule=node.__class__.__name__,
            location=location,
            statement=statement,
            scope_snapshot=snapshot,
        )


def evaluate(
    instruction: Instruction,
    nss: NameSpaceStack,
    interpreter: Optional[Interpreter] = None,
) -> Tuple[Optional[str], Value]:
    """Evaluate one instruction against ``nss``; the single entry point used by drivers."""
    return (interpreter or Interpreter()).execute(instruction, nss)


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def format_text(self, error: EvalError, verbose: bool) -> str:
        lines = ["Traceback (most recent step last):"]
        entry = self.interpreter.logger.last_entry()
        if entry is not None:
            if entry.source_location:
                loc = entry.source_location
                lines.append(f"  File \"{loc.file}\", line {loc.line}, column {loc.column}, in {entry.rule}")
            else:
                lines.append(f"  <unknown location> in {entry.rule}")
            if entry.statement:
                lines.append(f"    {entry.statement}")
            lines.append(f"    State log index: {entry.step_index}  State id: {entry.state_id}")
            if verbose and entry.scope_snapshot is not None:
                for depth, scope in enumerate(entry.scope_snapshot):
                    bindings = ", ".join(f"{k}={v}" for k, v in scope.items())
                    lines.append(f"    Scope [{depth}]: {bindings}")
        rule = error.rule or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (rule: {rule})")
        return "\n".join(lines)

    def to_json(self, error: EvalError) -> str:
        data: Dict[str, Any] = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "rule": error.rule,
                "failing_step_index": error.step_index,
            },
        }
        entry = self.interpreter.logger.last_entry()
        if entry is not None:
            step: Dict[str, Any] = {"step_index": entry.step_index, "state_id": entry.state_id, "rule": entry.rule}
            if entry.source_location:
                step["source_location"] = {
                    "file": entry.source_location.file,
                    "line": entry.source_location.line,
                    "column": entry.source_location.column,
                    "statement": entry.source_location.statement,
                }
            if entry.statement:
                step["statement"] = entry.statement
            if entry.scope_snapshot is not None:
                step["scope_snapshot"] = entry.scope_snapshot
            data["last_step"] = step
        return json.dumps(data, indent=2)
