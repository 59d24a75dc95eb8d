from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from errors import AlreadyDefined, NotMutable, ScopeError, Undefined
from memory import MemoryCell, StackAddress, Value


@dataclass
class NameSpace:
    """One lexical scope: name -> memory cell holding (mutable, value)."""

    cells: Dict[str, MemoryCell] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.cells)

    def contains(self, name: str) -> bool:
        return name in self.cells

    def declare(self, name: str, mutable: bool, value: Value) -> None:
        if name in self.cells:
            raise AlreadyDefined(name)
        self.cells[name] = MemoryCell.new(mutable, value)

    def find(self, name: str) -> Value:
        cell = self.cells.get(name)
        if cell is None:
            raise Undefined(name)
        return cell.get_value()

    def set(self, name: str, value: Value) -> None:
        cell = self.cells.get(name)
        if cell is None:
            raise Undefined(name)
        if not cell.is_mutable():
            raise NotMutable(name)
        # The new value may be of a different kind than the old one.
        cell.set_value(value)

    def snapshot(self) -> Dict[str, str]:
        def _render(cell: MemoryCell) -> str:
            prefix = "mut " if cell.mutable else ""
            if cell.value is None:
                return f"{prefix}<uninit>"
            return f"{prefix}{cell.value.type}:{cell.value}"

        return {name: _render(cell) for name, cell in self.cells.items()}


class NameSpaceStack:
    """Chain of active scopes, outermost first."""

    def __init__(self) -> None:
        self.stack: List[NameSpace] = []

    def __len__(self) -> int:
        return len(self.stack)

    @property
    def depth(self) -> int:
        return len(self.stack)

    def push(self, namespace: Optional[NameSpace] = None) -> None:
        self.stack.append(namespace if namespace is not None else NameSpace())

    def pop(self) -> NameSpace:
        if not self.stack:
            raise ScopeError("Cannot pop a scope from an empty scope stack")
        return self.stack.pop()

    @contextmanager
    def scope(self) -> Iterator[NameSpace]:
        """Push a fresh scope for the duration of the ``with`` body; it is popped even if the body raises."""
        namespace = NameSpace()
        self.push(namespace)
        try:
            yield namespace
        finally:
            self.pop()

    def find(self, name: str) -> Value:
        for namespace in reversed(self.stack):
            if namespace.contains(name):
                return namespace.find(name)
        raise Undefined(name)

    def declare(self, name: str, mutable: bool, value: Value) -> None:
        if not self.stack:
            raise ScopeError(f"Cannot declare '{name}': no scope is active")
        self.stack[-1].declare(name, mutable, value)

    def set(self, name: str, value: Value) -> None:
        # The nearest owner decides; NotMutable propagates even if an outer binding is mutable.
        for namespace in reversed(self.stack):
            try:
                namespace.set(name, value)
                return
            except Undefined:
                continue
        raise Undefined(name)

    def get_address(self, name: str) -> StackAddress:
        for index in range(len(self.stack) - 1, -1, -1):
            if self.stack[index].contains(name):
                return StackAddress(index, name)
        raise Undefined(name)

    def snapshot(self) -> List[Dict[str, str]]:
        return [namespace.snapshot() for namespace in self.stack]
