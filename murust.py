"""µRust entry point and REPL wiring."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional, Tuple

from errors import EvalError, MuRustParseError
from interpreter import Interpreter, TracebackFormatter
from memory import Value
from namespace import NameSpaceStack
from parser import parse_instruction


PROMPT = "µRust # "


def format_result(name: Optional[str], value: Value) -> str:
    return f"{name if name is not None else '-'} : {value.type} = {value}"


def new_scope_stack() -> NameSpaceStack:
    nss = NameSpaceStack()
    # The session-wide top-level scope; never popped.
    nss.push()
    return nss


def _is_blank(line: str) -> bool:
    stripped = line.strip()
    return stripped == "" or stripped.startswith("//")


def _run_line(line: str, filename: str, interpreter: Interpreter, nss: NameSpaceStack) -> Tuple[Optional[str], Value]:
    instruction = parse_instruction(line, filename)
    return interpreter.execute(instruction, nss)


def run_repl(verbose: bool) -> int:
    print("µRust REPL. One instruction per line, Ctrl-D to quit.")
    interpreter = Interpreter(verbose=verbose)
    formatter = TracebackFormatter(interpreter)
    nss = new_scope_stack()

    while True:
        try:
            line = input(PROMPT)
        except EOFError:
            print()
            break
        if _is_blank(line):
            continue
        try:
            name, value = _run_line(line, "<string>", interpreter, nss)
        except MuRustParseError as error:
            print(f"ParseError: {error}", file=sys.stderr)
            continue
        except EvalError as error:
            # Effects performed before the failure are kept; the session goes on.
            if verbose:
                print(formatter.format_text(error, verbose=True), file=sys.stderr)
            else:
                print(error.message, file=sys.stderr)
            continue
        print(format_result(name, value))
    return 0


def run_source(text: str, filename: str, *, verbose: bool = False, traceback_json: bool = False) -> int:
    """Run ``text`` one line at a time, printing each result; stop at the first failure."""
    interpreter = Interpreter(verbose=verbose)
    nss = new_scope_stack()
    for line in text.splitlines():
        if _is_blank(line):
            continue
        try:
            name, value = _run_line(line, filename, interpreter, nss)
        except MuRustParseError as error:
            print(f"ParseError: {error}", file=sys.stderr)
            return 1
        except EvalError as error:
            formatter = TracebackFormatter(interpreter)
            print(formatter.format_text(error, verbose=verbose), file=sys.stderr)
            if traceback_json:
                print(formatter.to_json(error), file=sys.stderr)
            return 1
        print(format_result(name, value))
    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="µRust interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Record scope snapshots and print tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    args = parser.parse_args(argv)

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return 1
        return run_repl(verbose=args.verbose)

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    return run_source(source_text, filename, verbose=args.verbose, traceback_json=args.traceback_json)


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
