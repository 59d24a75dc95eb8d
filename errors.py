from __future__ import annotations
from typing import Any, Optional


class MuRustError(Exception):
    """Base class for interpreter errors."""


class MuRustParseError(MuRustError):
    """Raised when lexing or parsing fails."""


class EvalError(MuRustError):
    """Raised for evaluation faults. Recoverable: the driver reports it and moves on."""

    def __init__(self, message: str, *, rule: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.rule = rule
        self.step_index: Optional[int] = None


class Undefined(EvalError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Undefined identifier '{name}'", rule="IDENT")
        self.name = name


class AlreadyDefined(EvalError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Identifier '{name}' is already defined in this scope", rule="LET")
        self.name = name


class NotMutable(EvalError):
    def __init__(self, expression: Optional[Any] = None) -> None:
        if expression is None:
            message = "Cannot write to an immutable location"
        else:
            message = f"Cannot write to immutable '{expression}'"
        super().__init__(message, rule="WRITE")
        self.expression = expression


class TypeMismatch(EvalError):
    def __init__(self, expression: Any, expected: str, found: Optional[str]) -> None:
        super().__init__(
            f"Type mismatch in '{expression}': expected {expected} but found {found}",
            rule="COERCE",
        )
        self.expression = expression
        self.expected = expected
        self.found = found


class DivisionByZero(EvalError):
    def __init__(self, expression: Any) -> None:
        super().__init__(f"Division by zero: '{expression}' evaluates to 0", rule="DIV")
        self.expression = expression


class IntegerOverflow(EvalError):
    def __init__(self, expression: Any) -> None:
        super().__init__(f"Integer overflow in '{expression}'", rule="ARITH")
        self.expression = expression


class NonAllocatedCell(EvalError):
    def __init__(self, expression: Optional[Any] = None) -> None:
        where = "" if expression is None else f" at '{expression}'"
        super().__init__(f"Access to a non-allocated memory cell{where}", rule="MEMORY")
        self.expression = expression


class NonInitializedValue(EvalError):
    def __init__(self, expression: Optional[Any] = None) -> None:
        where = "" if expression is None else f" at '{expression}'"
        super().__init__(f"Read of an uninitialized memory cell{where}", rule="MEMORY")
        self.expression = expression


class UndefinedOperation(EvalError):
    def __init__(self, operation: str) -> None:
        super().__init__(f"Operation {operation} is undefined for the given operands", rule=operation)
        self.operation = operation


class UnsupportedOperation(EvalError):
    def __init__(self, operation: str) -> None:
        super().__init__(f"Operation {operation} is not supported on this target", rule=operation)
        self.operation = operation


class NotImplementedFeature(EvalError):
    def __init__(self, feature: str) -> None:
        super().__init__(f"{feature} is not implemented", rule=feature)
        self.feature = feature


class ScopeError(EvalError):
    def __init__(self, message: str) -> None:
        super().__init__(message, rule="SCOPE")
