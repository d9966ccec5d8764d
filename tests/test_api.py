"""Tests for the composable API functions in rb2go.api."""

from __future__ import annotations

import json

import pytest

from rb2go import CompileError, compile_file, compile_sexp, compile_source, dump_sexp, load_sexp, parse_source
from rb2go.compile_types import CompilerConfig


class TestParseAndSerialize:
    def test_parse_source(self):
        assert parse_source("x = 1")[0] == "program"

    def test_dump_then_load(self):
        tree = parse_source("puts 1")
        assert load_sexp(dump_sexp(tree)) == tree

    def test_dump_is_json(self):
        assert json.loads(dump_sexp(["program", [["void_stmt"]]])) == ["program", [["void_stmt"]]]


class TestCompileSource:
    def test_default_unit(self):
        out = compile_source("x = 1")
        assert out.startswith("package __main__\n")
        assert 'ßx := πg.InternStr("x")' in out

    def test_custom_config(self):
        out = compile_source("x = 1", CompilerConfig(unit_name="demo", script="demo.rb"))
        assert out.startswith("package demo\n")
        assert '"demo.rb"' in out

    def test_compile_error_propagates(self):
        with pytest.raises(CompileError, match="'return' outside function"):
            compile_source("return 1")

    def test_unsupported_form_raises(self):
        with pytest.raises(CompileError, match="Block arguments are not supported."):
            compile_source("foo(&blk)")


class TestCompileSexp:
    def test_tree(self):
        out = compile_sexp(["program", [["void_stmt"]]])
        assert "package __main__" in out

    def test_json_text(self):
        text = '["program", [["assign", ["var_field", ["@ident", "y", [1, 0]]], ["@int", "2", [1, 4]]]]]'
        out = compile_sexp(text, CompilerConfig(unit_name="tree"))
        assert out.startswith("package tree\n")
        assert "πg.NewInt(2).ToObject()" in out

    def test_same_output_as_source(self):
        source = "def twice(n)\n  n * 2\nend\nputs twice(21)\n"
        assert compile_sexp(parse_source(source)) == compile_source(source)


class TestCompileFile:
    def test_unit_from_file_name(self, tmp_path):
        path = tmp_path / "hello.rb"
        path.write_text("puts 'hi'\n", encoding="utf-8")
        out = compile_file(path)
        assert out.startswith("package hello\n")
        assert f'"{path}"' in out
        assert '\tπg.RegisterModule("hello", Code)' in out

    def test_explicit_unit_name(self, tmp_path):
        path = tmp_path / "hello.rb"
        path.write_text("puts 'hi'\n", encoding="utf-8")
        assert compile_file(path, unit_name="greeter").startswith("package greeter\n")
