"""
Pytest configuration and fixtures for the µRust interpreter tests.
"""

import os
import sys

import pytest

# Add the repository root to the path so the flat modules import without installation.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from interpreter import Interpreter
from murust import new_scope_stack
from parser import parse_instruction


@pytest.fixture
def nss():
    """A scope stack holding only the top-level scope, as a fresh REPL session has."""
    return new_scope_stack()


@pytest.fixture
def interpreter():
    return Interpreter()


@pytest.fixture
def run(interpreter, nss):
    """Parse and execute one line against the shared session state."""
    def _run(line):
        return interpreter.execute(parse_instruction(line), nss)
    return _run
