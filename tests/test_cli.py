"""
Tests for the script runner, the REPL loop and result rendering.
"""

import json

from memory import UNIT, StackAddress, bool_value, int_value, pointer_value
from murust import format_result, run_cli, run_repl, run_source


def feed_input(monkeypatch, lines):
    remaining = iter(lines)

    def fake_input(prompt=""):
        try:
            return next(remaining)
        except StopIteration:
            raise EOFError

    monkeypatch.setattr("builtins.input", fake_input)


class TestFormatting:
    def test_named_result(self):
        assert format_result("x", int_value(5)) == "x : int = 5"

    def test_unnamed_results(self):
        assert format_result(None, UNIT) == "- : unit = ()"
        assert format_result(None, bool_value(False)) == "- : bool = false"
        assert format_result(None, pointer_value(StackAddress(0, "i"))) == "- : address = @[0, i]"


class TestRunSource:
    def test_runs_each_line(self, capsys):
        code = run_source("let mut k = 0\nwhile (k < 4) { k = k + 3 }\n\n// done\nk\n", "<string>")
        out = capsys.readouterr().out
        assert code == 0
        assert out.splitlines() == ["k : int = 0", "- : unit = ()", "- : int = 6"]

    def test_stops_at_first_error(self, capsys):
        code = run_source("let x = 0\n1 / x\nx\n", "<string>")
        captured = capsys.readouterr()
        assert code == 1
        assert captured.out.splitlines() == ["x : int = 0"]
        assert "DivisionByZero" in captured.err
        assert "(rule: DIV)" in captured.err

    def test_json_traceback(self, capsys):
        code = run_source("let c = 1\nc = 2\n", "<string>", traceback_json=True)
        err = capsys.readouterr().err
        assert code == 1
        payload = json.loads(err[err.index("{"):])
        assert payload["error"]["type"] == "NotMutable"
        assert payload["last_step"]["rule"] == "Write"

    def test_parse_error(self, capsys):
        code = run_source("let = 1\n", "<string>")
        assert code == 1
        assert "ParseError" in capsys.readouterr().err

    def test_deeply_nested_line_is_a_parse_error(self, capsys):
        code = run_source("(" * 3000 + "1" + ")" * 3000 + "\nlet after = 1\n", "<string>")
        captured = capsys.readouterr()
        assert code == 1
        assert "ParseError: Instruction is nested too deeply to parse" in captured.err
        assert captured.out == ""


class TestCli:
    def test_literal_source(self, capsys):
        assert run_cli(["-source", "let x = 2"]) == 0
        assert capsys.readouterr().out.strip() == "x : int = 2"

    def test_source_file(self, tmp_path, capsys):
        program = tmp_path / "prog.mrs"
        program.write_text("let i = 0\n{ let i = 8; &i }\n", encoding="utf-8")
        assert run_cli([str(program)]) == 0
        assert capsys.readouterr().out.splitlines() == ["i : int = 0", "- : address = @[1, i]"]

    def test_missing_file(self, tmp_path, capsys):
        assert run_cli([str(tmp_path / "absent.mrs")]) == 1
        assert "Failed to read" in capsys.readouterr().err

    def test_source_flag_needs_program(self, capsys):
        assert run_cli(["-source"]) == 1


class TestRepl:
    def test_session_survives_errors(self, monkeypatch, capsys):
        feed_input(monkeypatch, ["let x = 1", "x = 2", "", "1 / 0", "let = 3", "{ let x = 5; x }", "x"])
        assert run_repl(verbose=False) == 0
        captured = capsys.readouterr()
        assert "x : int = 1" in captured.out
        assert "- : int = 5" in captured.out
        assert captured.out.rstrip().splitlines()[-1] == "- : int = 1"
        assert "Cannot write to immutable 'x'" in captured.err
        assert "Division by zero" in captured.err
        assert "ParseError" in captured.err

    def test_session_survives_deep_nesting(self, monkeypatch, capsys):
        feed_input(monkeypatch, ["(" * 3000 + "1" + ")" * 3000, "let y = 4", "y"])
        assert run_repl(verbose=False) == 0
        captured = capsys.readouterr()
        assert "nested too deeply" in captured.err
        assert "y : int = 4" in captured.out
        assert captured.out.rstrip().splitlines()[-1] == "- : int = 4"

    def test_verbose_traceback(self, monkeypatch, capsys):
        feed_input(monkeypatch, ["let x = 1", "x + true"])
        assert run_repl(verbose=True) == 0
        err = capsys.readouterr().err
        assert "Traceback (most recent step last):" in err
        assert "Scope [0]: x=int:1" in err
        assert "TypeMismatch" in err
