"""Tests for statement lowering in rb2go.codegen.stmt_visitor."""

from __future__ import annotations

import logging

import pytest

from rb2go.codegen.block import FunctionBlock, TopLevelBlock, Var, VarKind
from rb2go.codegen.errors import CompileError
from rb2go.codegen.stmt_visitor import StatementVisitor

CONTINUE = "\tcontinue\n}\n"
VOID = [["void_stmt"]]


def _ident(name, col=0):
    return ["@ident", name, [1, col]]


def _int(text, col=0):
    return ["@int", text, [1, col]]


def _kw(word):
    return ["var_ref", ["@kw", word, [1, 3]]]


def _bodystmt(stmts):
    return ["bodystmt", stmts, None, None, None]


def _def(name, params, stmts):
    param_list = [_ident(p) for p in params] or None
    return [
        "def",
        _ident(name, 4),
        ["paren", ["params", param_list, None, None, None, None, None, None]],
        _bodystmt(stmts),
    ]


def _class(name, stmts, superclass=None):
    return ["class", ["const_ref", ["@const", name, [1, 6]]], superclass, _bodystmt(stmts)]


def _method_block(**kinds) -> FunctionBlock:
    block_vars = {}
    for i, (name, kind) in enumerate(kinds.items()):
        arg_index = i if kind == VarKind.PARAM else None
        block_vars[name] = Var(name=name, kind=kind, arg_index=arg_index)
    return FunctionBlock(TopLevelBlock(), "m", block_vars)


def _lower(*stmts, block=None):
    visitor = StatementVisitor(block or TopLevelBlock())
    visitor.visit_each(list(stmts))
    return visitor.writer.getvalue(), visitor.block


class TestSimpleStatements:
    def test_void_statement_emits_nothing(self):
        out, _ = _lower(["void_stmt"])
        assert out == ""

    def test_expression_statement_frees_result(self):
        out, block = _lower(["vcall", _ident("foo")])
        assert "πTemp001.Call(πF, nil, nil)" in out
        assert block.used_temps == set()

    def test_unknown_statement_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            out, _ = _lower(["begin", [2, 0]])
        assert out == ""
        assert "Skipping unsupported statement 'begin' at 2:0" in caplog.text

    def test_global_declaration_emits_nothing(self):
        out, _ = _lower(["global", [_ident("x", 7)]])
        assert out == ""

    def test_rescue_rejected(self):
        visitor = StatementVisitor(TopLevelBlock())
        node = ["bodystmt", VOID, ["rescue", [2, 0]], None, None]
        with pytest.raises(CompileError, match="rescue, else and ensure"):
            visitor.visit(node)


class TestDef:
    def test_toplevel_function(self):
        out, block = _lower(_def("ident", ["a"], [["var_ref", _ident("a", 2)]]))
        assert "πTemp001 = make([]πg.Param, 1)" in out
        assert 'πTemp001[0] = πg.Param{Name: "a", Def: nil}' in out
        assert (
            'πTemp002 = πg.NewFunction(πg.NewCode("ident", "<string>", πTemp001, 0, '
            "func(πF *πg.Frame, πArgs []*πg.Object) (*πg.Object, *πg.BaseException) {"
        ) in out
        assert "\tvar µa *πg.Object = πArgs[0]; _ = µa\n" in out
        assert "\t\tπR = µa\n\t\tcontinue\n\t\treturn πg.None, nil\n" in out
        assert "\treturn πR, πE\n}), πF.Globals()).ToObject()\n" in out
        assert out.endswith(
            "if πE = πF.Globals().SetItem(πF, ßident.ToObject(), πTemp002); πE != nil {\n"
            + CONTINUE
        )
        assert block.used_temps == set()

    def test_trailing_if_returns_from_each_branch(self):
        node = ["if", _kw("true"), [_int("1")], ["else", [_int("2")]]]
        out, _ = _lower(_def("f", [], [node]))
        assert "\t\tπR = πg.NewInt(1).ToObject()\n\t\tcontinue\n\t\tgoto Label3\n" in out
        assert "\t\tπR = πg.NewInt(2).ToObject()\n\t\tcontinue\n\t\tgoto Label3\n" in out

    def test_trailing_if_modifier_returns_its_value(self):
        out, _ = _lower(_def("f", [], [["if_mod", _kw("true"), _int("7")]]))
        assert "\t\tπR = πg.NewInt(7).ToObject()\n\t\tcontinue\n" in out
        assert "Label1:\n\t\treturn πg.None, nil\n" in out

    def test_trailing_unless_modifier_returns_its_value(self):
        out, _ = _lower(_def("f", [], [["unless_mod", _kw("false"), _int("8")]]))
        assert "\t\tπR = πg.NewInt(8).ToObject()\n\t\tcontinue\n" in out

    def test_if_modifier_at_top_level_has_no_return(self):
        out, _ = _lower(["if_mod", _kw("true"), _int("7")])
        assert "πR" not in out

    def test_if_at_top_level_has_no_return(self):
        out, _ = _lower(["if", _kw("true"), [_int("1")], None])
        assert "πR" not in out

    def test_locals_declared_unbound(self):
        body = [["assign", ["var_field", _ident("t")], _int("1")]]
        out, _ = _lower(_def("f", [], body))
        assert "var µt *πg.Object = πg.UnboundLocal; _ = µt" in out
        assert "πTemp001 = make([]πg.Param, 0)" in out

    def test_body_temps_declared_inside_function(self):
        out, block = _lower(_def("f", [], [["vcall", _ident("g")]]))
        assert "\tvar πTemp001 *πg.Object\n\t_ = πTemp001\n" in out
        assert block.temp_index == 2

    def test_declared_global_not_a_go_local(self):
        body = [["global", [_ident("g")]], ["assign", ["var_field", _ident("g")], _int("1")]]
        out, _ = _lower(_def("f", [], body))
        assert "µg" not in out
        assert "πF.Globals().SetItem(πF, ßg.ToObject()" in out

    def test_method_receives_self(self):
        out, _ = _lower(_class("Foo", [_def("bar", [], VOID)]))
        assert 'πg.Param{Name: "self", Def: nil}' in out
        assert "var µself *πg.Object = πArgs[0]; _ = µself" in out
        assert "πClass.SetItem(πF, ßbar.ToObject()" in out

    def test_initialize_becomes_init(self):
        out, _ = _lower(_class("Foo", [_def("initialize", ["n"], VOID)]))
        assert "πClass.SetItem(πF, ß__init__.ToObject()" in out
        assert 'πg.Param{Name: "n", Def: nil}' in out

    def test_nested_def_is_local(self):
        inner = _def("inner", [], VOID)
        out, _ = _lower(_def("outer", [], [inner, ["vcall", _ident("inner")]]))
        assert "var µinner *πg.Object = πg.UnboundLocal; _ = µinner" in out
        assert "µinner = πTemp002" in out


class TestClass:
    def test_class_definition(self):
        out, block = _lower(_class("Foo", VOID))
        assert "πTemp002 = make([]*πg.Object, 0)" in out
        assert "πTemp001 = πg.NewDict()" in out
        assert (
            'if πTemp003, πE = πg.NewCode("Foo", "<string>", nil, 0, '
            "func(πF *πg.Frame, _ []*πg.Object) (*πg.Object, *πg.BaseException) {"
        ) in out
        assert "\tπClass := πTemp001\n\t_ = πClass\n" in out
        assert "}).Eval(πF, πF.Globals(), nil, nil); πE != nil {\n\tcontinue\n}\n" in out
        assert (
            "πg.TypeType.ToObject().Call(πF, []*πg.Object{πg.NewStr(\"Foo\").ToObject(), "
            "πg.NewTuple(πTemp002...).ToObject(), πTemp001.ToObject()}, nil)"
        ) in out
        assert "πF.Globals().SetItem(πF, ßFoo.ToObject(), πTemp003)" in out
        assert block.used_temps == set()

    def test_superclass(self):
        base = ["var_ref", ["@const", "Base", [1, 12]]]
        out, _ = _lower(_class("Foo", VOID, base))
        assert "πg.ResolveGlobal(πF, ßBase)" in out
        assert "πTemp002 = make([]*πg.Object, 1)\nπTemp002[0] = πTemp003\n" in out

    def test_class_body_reads_through_class_dict(self):
        out, _ = _lower(_class("Foo", [["vcall", _ident("helper")]]))
        assert "πg.ResolveClass(πF, πClass, nil, ßhelper)" in out


class TestIf:
    def test_if_else(self):
        node = ["if", _kw("true"), VOID, ["else", VOID]]
        out, block = _lower(node)
        assert out == (
            "if πTemp001, πE = πg.IsTrue(πF, πg.True.ToObject()); πE != nil {\n" + CONTINUE
            + "if πTemp001 {\n\tgoto Label1\n}\n"
            "goto Label2\n"
            "Label1:\n"
            "goto Label3\n"
            "Label2:\n"
            "goto Label3\n"
            "Label3:\n"
        )
        assert block.checkpoints == []

    def test_if_without_else_jumps_to_end(self):
        out, _ = _lower(["if", _kw("true"), VOID, None])
        assert out.endswith("goto Label2\nLabel1:\ngoto Label2\nLabel2:\n")

    def test_elsif_chain(self):
        node = ["if", _kw("true"), VOID, ["elsif", _kw("false"), VOID, ["else", VOID]]]
        out, _ = _lower(node)
        assert "if πTemp001 {\n\tgoto Label1\n}" in out
        assert "if πTemp001 {\n\tgoto Label2\n}" in out
        assert "goto Label3\nLabel1:\n" in out
        assert out.endswith("Label3:\ngoto Label4\nLabel4:\n")

    def test_unless_negates(self):
        out, _ = _lower(["unless", _kw("true"), VOID, None])
        assert "if !πTemp001 {\n\tgoto Label1\n}" in out

    def test_modifier(self):
        out, _ = _lower(["if_mod", _kw("true"), ["vcall", _ident("foo")]])
        assert out.startswith(
            "if πTemp001, πE = πg.IsTrue(πF, πg.True.ToObject()); πE != nil {\n" + CONTINUE
            + "if !πTemp001 {\n\tgoto Label1\n}\n"
        )
        assert out.endswith("Label1:\n")

    def test_unless_modifier(self):
        out, _ = _lower(["unless_mod", _kw("true"), ["vcall", _ident("foo")]])
        assert "if πTemp001 {\n\tgoto Label1\n}" in out


class TestWhile:
    def test_loop_structure(self):
        out, block = _lower(["while", _kw("true"), VOID])
        assert out == (
            "πF.PushCheckpoint(2)\n"
            "πTemp001 = false\n"
            "Label1:\n"
            "if πE != nil || πR != nil {\n" + CONTINUE
            + "if πTemp001 {\n\tπF.PopCheckpoint()\n\tgoto Label2\n}\n"
            "if πTemp002, πE = πg.IsTrue(πF, πg.True.ToObject()); πE != nil {\n" + CONTINUE
            + "if !πTemp002 {\n" + CONTINUE
            + "πF.PushCheckpoint(1)\n"
            "continue\n"
            "Label2:\n"
            "if πE != nil || πR != nil {\n" + CONTINUE
        )
        assert block.checkpoints == [1, 2]
        assert block.top_loop() is None

    def test_until_exits_on_true(self):
        out, _ = _lower(["until", _kw("true"), VOID])
        assert "if πTemp002 {\n\tcontinue\n}" in out

    def test_break_sets_loop_flag(self):
        out, _ = _lower(["while", _kw("true"), [["break", []]]])
        assert "πF.PushCheckpoint(1)\nπTemp001 = true\ncontinue\ncontinue\n" in out

    def test_next_restarts_iteration(self):
        out, _ = _lower(["while", _kw("true"), [["next", []]]])
        assert "πF.PushCheckpoint(1)\ncontinue\ncontinue\n" in out

    def test_modifier_loop(self):
        out, block = _lower(["while_mod", _kw("true"), ["vcall", _ident("tick")]])
        assert "ßtick" in out
        assert block.checkpoints == [1, 2]

    def test_break_outside_loop(self):
        with pytest.raises(CompileError, match="'break' not in loop"):
            _lower(["break", []])

    def test_next_outside_loop(self):
        with pytest.raises(CompileError, match="'next' not properly in loop"):
            _lower(["next", []])


class TestReturn:
    def test_return_value(self):
        node = ["return", ["args_add_block", [_int("1", 7)], False]]
        out, _ = _lower(node, block=_method_block())
        assert out == "πR = πg.NewInt(1).ToObject()\ncontinue\n"

    def test_bare_return(self):
        out, _ = _lower(["return0"], block=_method_block())
        assert out == "πR = πg.None\ncontinue\n"

    def test_return_outside_function(self):
        with pytest.raises(CompileError, match="'return' outside function"):
            _lower(["return0"])

    def test_multiple_values_rejected(self):
        node = ["return", ["args_add_block", [_int("1", 7), _int("2", 10)], False]]
        with pytest.raises(CompileError, match="Only a single return value is supported."):
            _lower(node, block=_method_block())


class TestUndef:
    def test_undef_global(self):
        out, _ = _lower(["undef", [["symbol_literal", _ident("foo", 6)]]])
        assert out == "if πE = πg.DelVar(πF, πF.Globals(), ßfoo); πE != nil {\n" + CONTINUE

    def test_undef_local(self):
        node = ["undef", [["symbol_literal", ["symbol", _ident("x", 7)]]]]
        out, _ = _lower(node, block=_method_block(x=VarKind.LOCAL))
        assert out.endswith("µx = πg.UnboundLocal\n")

    def test_undef_unknown_local(self):
        symbol = ["symbol_literal", _ident("y", 6)]
        with pytest.raises(CompileError, match="cannot delete nonexistent local: y") as exc:
            _lower(["undef", [symbol]], block=_method_block())
        assert exc.value.node is symbol
        assert str(exc.value.location) == "1:6"
        assert "[symbol_literal at 1:6]" in str(exc.value)
