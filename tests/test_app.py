"""Tests for the command line front end."""

import builtins

import pytest

from linecalc import app
from linecalc.render import ErrorRenderNode, MathResultNode, TextNode
from linecalc.sheet import Sheet


class TestFormatLine:
    def test_result_is_aligned(self):
        render = MathResultNode("2 + 2", "4")
        assert app.format_line("2 + 2 =>", render, 10) == "2 + 2 =>   4"

    def test_silent_line(self):
        assert app.format_line("x = 5", TextNode("x = 5"), 10) == "x = 5"
        assert app.format_line("x = 5", None) == "x = 5"

    def test_error(self):
        render = ErrorRenderNode("Division by zero")
        assert app.format_line("1/0 =>", render, 8).endswith("Error: Division by zero")


class TestInteractiveLine:
    @pytest.mark.parametrize(
        "query, expected",
        [
            ("2 + 2", "2 + 2 =>"),
            ("2 + 2 =>", "2 + 2 =>"),
            ("x = 5", "x = 5"),
            ("# note", "# note"),
            ("solve x in 2x = 4", "solve x in 2x = 4 =>"),
            ("  5 km to m  ", "5 km to m =>"),
        ],
    )
    def test_trigger_added(self, query, expected):
        assert app._interactive_line(query) == expected


class TestRunFile:
    def test_prints_results(self, tmp_path, capsys):
        sheet_file = tmp_path / "expenses.calc"
        sheet_file.write_text("price = 10\nqty = 3\ntotal = price * qty =>\n", encoding="utf-8")

        assert app.run_file(str(sheet_file)) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "price = 10"
        assert lines[2].startswith("total = price * qty =>")
        assert lines[2].endswith("total = 30")

    def test_missing_file(self, tmp_path, capsys):
        assert app.run_file(str(tmp_path / "missing.calc")) == 1
        assert "could not read" in capsys.readouterr().out


class TestCliMode:
    """Drive the prompt loop with scripted input."""

    def run(self, monkeypatch, inputs, sheet=None):
        feed = iter(inputs)

        def fake_input(prompt=""):
            try:
                return next(feed)
            except StopIteration:
                raise EOFError

        monkeypatch.setattr(builtins, "input", fake_input)
        monkeypatch.setattr(app, "_setup_readline", lambda sheet: False)
        app.run_cli_mode(sheet)

    def test_session(self, monkeypatch, capsys):
        sheet = Sheet()
        self.run(monkeypatch, ["x = 4", "x * 2", "?x", "print y", "vars", "exit"], sheet)
        out = capsys.readouterr().out
        assert "x = 4" in out
        assert "8" in out.splitlines()
        assert "Variable 'y' is not defined" in out
        assert "Current variables:" in out
        assert "Goodbye!" in out

    def test_function_and_errors(self, monkeypatch, capsys):
        self.run(monkeypatch, ["f(a) = a + 1", "f(1)", "1/0"])
        out = capsys.readouterr().out
        assert "Defined f(a)" in out
        assert "2" in out.splitlines()
        assert "Error: Division by zero" in out

    def test_clear(self, monkeypatch, capsys):
        sheet = Sheet()
        self.run(monkeypatch, ["x = 1", "clear", "vars"], sheet)
        out = capsys.readouterr().out
        assert "Cleared all lines and variables." in out
        assert "No variables defined." in out
        assert sheet.lines == []


class TestMain:
    def test_file_option(self, tmp_path, capsys):
        sheet_file = tmp_path / "one.calc"
        sheet_file.write_text("6 * 7 =>\n", encoding="utf-8")
        assert app.main(["--file", str(sheet_file)]) == 0
        assert capsys.readouterr().out.strip().endswith("42")

    def test_log_level_choices(self):
        parser = app.build_argument_parser()
        assert parser.parse_args([]).log_level == "WARNING"
        with pytest.raises(SystemExit):
            parser.parse_args(["--log-level", "LOUD"])
