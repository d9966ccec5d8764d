"""Tests for the transpile.py command line."""

from __future__ import annotations

import json

import pytest

from rb2go.codegen.errors import CompileError
from transpile import main

VOID_SEXP = '["program", [["void_stmt"]]]'


class TestTranspileCli:
    def test_source_text_to_stdout(self, capsys):
        main(["x = 1"])
        out = capsys.readouterr().out
        assert out.startswith("package __main__\n")
        assert 'ßx := πg.InternStr("x")' in out

    def test_source_file(self, tmp_path, capsys):
        path = tmp_path / "prog.rb"
        path.write_text("puts 1\n", encoding="utf-8")
        main([str(path)])
        assert capsys.readouterr().out.startswith("package prog\n")

    def test_unit_override(self, capsys):
        main(["puts 1", "--unit", "demo"])
        assert capsys.readouterr().out.startswith("package demo\n")

    def test_sexp_input(self, capsys):
        main([VOID_SEXP, "--sexp", "-u", "tree"])
        out = capsys.readouterr().out
        assert out.startswith("package tree\n")
        assert "case 0:" in out

    def test_dump_sexp(self, capsys):
        main(["x = 1", "--dump-sexp"])
        tree = json.loads(capsys.readouterr().out)
        assert tree == [
            "program",
            [["assign", ["var_field", ["@ident", "x", [1, 0]]], ["@int", "1", [1, 4]]]],
        ]

    def test_output_file(self, tmp_path, capsys):
        target = tmp_path / "out.go"
        main(["puts 1", "--output", str(target)])
        assert capsys.readouterr().out == ""
        assert target.read_text(encoding="utf-8").startswith("package __main__\n")

    def test_debug_log_goes_to_stderr(self, capsys):
        main([VOID_SEXP, "--sexp", "--log-level", "debug"])
        captured = capsys.readouterr()
        assert captured.out.startswith("package __main__\n")
        assert "package" not in captured.err

    def test_compile_error_propagates(self):
        with pytest.raises(CompileError, match="'break' not in loop"):
            main(["break"])

    def test_unknown_log_level_rejected(self):
        with pytest.raises(SystemExit):
            main(["x = 1", "--log-level", "trace"])
