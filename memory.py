from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

import numpy as np

from errors import NonAllocatedCell, NonInitializedValue, NotMutable


TYPE_INT = "int"
TYPE_BOOL = "bool"
TYPE_UNIT = "unit"
TYPE_ADDRESS = "address"

# Integers are machine words, as wide as a pointer.
_ISIZE = np.iinfo(np.intp)
ISIZE_MIN = int(_ISIZE.min)
ISIZE_MAX = int(_ISIZE.max)


def fits_isize(value: int) -> bool:
    return ISIZE_MIN <= value <= ISIZE_MAX


@dataclass(frozen=True)
class StackAddress:
    depth: int
    name: str

    def __str__(self) -> str:
        return f"@[{self.depth}, {self.name}]"


@dataclass(frozen=True)
class HeapAddress:
    index: int

    def __str__(self) -> str:
        return f"@[{self.index}]"


Address = Union[StackAddress, HeapAddress]


@dataclass(frozen=True)
class Value:
    type: str
    value: Any

    def __str__(self) -> str:
        if self.type == TYPE_BOOL:
            return "true" if self.value else "false"
        if self.type == TYPE_UNIT:
            return "()"
        return str(self.value)

    def to_int(self) -> Optional[int]:
        # None signals "not an int"; callers branch on it rather than catching.
        if self.type == TYPE_INT:
            return self.value
        return None

    def to_bool(self) -> Optional[bool]:
        if self.type == TYPE_BOOL:
            return bool(self.value)
        return None


UNIT = Value(TYPE_UNIT, None)


def int_value(value: int) -> Value:
    return Value(TYPE_INT, value)


def bool_value(value: bool) -> Value:
    return Value(TYPE_BOOL, bool(value))


def pointer_value(address: Address) -> Value:
    return Value(TYPE_ADDRESS, address)


@dataclass
class MemoryCell:
    """A storage slot. Either not allocated, or allocated with a mutability flag and an optional value."""

    allocated: bool = False
    mutable: bool = False
    value: Optional[Value] = None

    @classmethod
    def new(cls, mutable: bool, value: Optional[Value]) -> "MemoryCell":
        return cls(allocated=True, mutable=mutable, value=value)

    def is_allocated(self) -> bool:
        return self.allocated

    def is_mutable(self) -> bool:
        return self.allocated and self.mutable

    def get_value(self) -> Value:
        if not self.allocated:
            raise NonAllocatedCell()
        if self.value is None:
            raise NonInitializedValue()
        return self.value

    def set_value(self, value: Value) -> None:
        if not self.allocated:
            raise NonAllocatedCell()
        if not self.mutable:
            raise NotMutable()
        self.value = value


@dataclass
class Heap:
    cells: List[MemoryCell] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cells)

    def reserve(self, count: int) -> None:
        """Grow the heap by ``count`` not-allocated cells."""
        self.cells.extend(MemoryCell() for _ in range(count))

    def malloc(self, mutable: bool, value: Optional[Value]) -> HeapAddress:
        cells = self.cells
        # First fit: reuse the lowest free slot before growing.
        for index, cell in enumerate(cells):
            if not cell.is_allocated():
                cells[index] = MemoryCell.new(mutable, value)
                return HeapAddress(index)
        cells.append(MemoryCell.new(mutable, value))
        return HeapAddress(len(cells) - 1)

    def cell(self, address: HeapAddress) -> MemoryCell:
        if 0 <= address.index < len(self.cells):
            return self.cells[address.index]
        return MemoryCell()

    def read(self, address: HeapAddress) -> Value:
        cell = self.cell(address)
        if not cell.is_allocated():
            raise NonAllocatedCell(address)
        if cell.value is None:
            raise NonInitializedValue(address)
        return cell.value

    def write(self, address: HeapAddress, value: Value) -> None:
        cell = self.cell(address)
        if not cell.is_allocated():
            raise NonAllocatedCell(address)
        cell.set_value(value)
