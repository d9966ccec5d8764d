"""StatementVisitor — lowers Ruby statements into the body of a Block.

Each StatementVisitor owns the writer for one Go function body; nested method
and class bodies get their own visitor, whose text is then spliced into the
enclosing body inside a function literal.
"""

from __future__ import annotations

import logging

from .. import constants
from ..source import location_of
from .block import (
    Block,
    BlockVisitor,
    ClassBlock,
    FunctionBlock,
    FunctionBlockVisitor,
    VarKind,
)
from .errors import CompileError
from .expr import Expr
from .expr_visitor import ExprVisitor
from .util import go_identifier, go_str
from .visitor import Visitor, check_arity, is_node, node_tag
from .writer import Writer, label_name

logger = logging.getLogger(__name__)

_FRAME_DECLS = (
    "var πR *πg.Object; _ = πR",
    "var πE *πg.BaseException; _ = πE",
)

# statements whose branches each supply the value of a trailing position
_BRANCHING_TAGS = frozenset({"if", "unless", "if_mod", "unless_mod"})


class StatementVisitor(Visitor):
    """Writes Go statements for the statements of one block."""

    def __init__(self, block: Block, parent: StatementVisitor | None = None):
        super().__init__(block=block, writer=Writer(), parent=parent)
        self.expr_visitor = ExprVisitor(self)
        self._DISPATCH = {
            "program": self.visit_program,
            "bodystmt": self.visit_bodystmt,
            "void_stmt": self.visit_void_stmt,
            constants.GLOBAL_DECL_TAG: self.visit_global,
            "def": self.visit_def,
            "class": self.visit_class,
            "if": self.visit_if,
            "unless": self.visit_if,
            "if_mod": self.visit_if_mod,
            "unless_mod": self.visit_if_mod,
            "while": self.visit_while,
            "until": self.visit_while,
            "while_mod": self.visit_while,
            "until_mod": self.visit_while,
            "break": self.visit_break,
            "next": self.visit_next,
            "return": self.visit_return,
            "return0": self.visit_return0,
            "undef": self.visit_undef,
        }

    def visit_general(self, node, **context):
        value = self.expr_visitor.visit(node)
        if isinstance(value, Expr):
            value.free()
        else:
            logger.warning(
                "Skipping unsupported statement '%s' at %s", node[0], location_of(node)
            )

    # ── bodies ───────────────────────────────────────────────────

    # e.g. ["program", [["void_stmt"]]]
    def visit_program(self, node):
        self.visit_each(node[1])

    # e.g. ["bodystmt", [["void_stmt"]], nil, nil, nil]
    def visit_bodystmt(self, node, implicit_return: bool = False):
        if any(node[2:]):
            raise CompileError(node, "rescue, else and ensure clauses are not supported.")
        self._visit_stmts(node[1], implicit_return)

    def _visit_stmts(self, stmts, implicit_return: bool = False):
        """Visit a statement list; with *implicit_return*, its last value becomes πR."""
        if not implicit_return or not stmts or is_node(stmts):
            self.visit_each(stmts)
            return
        self.visit_each(stmts[:-1])
        last = stmts[-1]
        if node_tag(last) in _BRANCHING_TAGS:
            self.visit(last, implicit_return=True)
            return
        if node_tag(last) in self._DISPATCH:
            self.visit(last)
            return
        value = self.expr_visitor.visit(last)
        if not isinstance(value, Expr):
            logger.warning(
                "Skipping unsupported statement '%s' at %s", last[0], location_of(last)
            )
            return
        with value:
            self.writer.write(f"πR = {value.expr}")
        self.writer.write("continue")

    def visit_void_stmt(self, node):
        pass

    def visit_global(self, node):
        """Declarations are consumed by the classification pass."""

    # ── definitions ──────────────────────────────────────────────

    # e.g. ["def", ["@ident", "foo", [1, 4]], ["paren", ["params", ...]], ["bodystmt", ...]]
    def visit_def(self, node):
        name = self.expr_visitor.method_name(node[1])
        is_method = isinstance(self.block, ClassBlock)
        func_visitor = FunctionBlockVisitor(node, is_method=is_method)
        func_visitor.visit(node[3])
        func_block = FunctionBlock(self.block, name, func_visitor.vars)

        body_visitor = StatementVisitor(func_block, parent=self)
        with body_visitor.writer.indent_block():
            body_visitor.visit_typed_node(node[3], "bodystmt", implicit_return=True)
            body_visitor.writer.write("return πg.None, nil")

        params = sorted(
            (v for v in func_block.vars.values() if v.kind == VarKind.PARAM),
            key=lambda v: v.arg_index,
        )
        filename = go_str(self.block.root.buffer.filename)
        with self.block.alloc_temp(constants.PARAM_SLICE_TYPE) as func_args, \
                self.block.alloc_temp() as func:
            self.writer.write(f"{func_args.name} = make([]πg.Param, {len(params)})")
            for var in params:
                self.writer.write(
                    f"{func_args.name}[{var.arg_index}] = "
                    f"πg.Param{{Name: {go_str(var.name)}, Def: nil}}"
                )
            self.writer.write(
                f"{func.name} = πg.NewFunction(πg.NewCode({go_str(name)}, {filename}, "
                f"{func_args.name}, 0, func(πF *πg.Frame, πArgs []*πg.Object) "
                "(*πg.Object, *πg.BaseException) {"
            )
            with self.writer.indent_block():
                for var in func_block.vars.values():
                    if var.kind != VarKind.GLOBAL:
                        local = go_identifier(var.name)
                        self.writer.write(
                            f"var {local} {constants.OBJECT_TYPE} = {var.init_expr}; _ = {local}"
                        )
                self.writer.write_temp_decls(func_block)
                self.writer.write("\n".join(_FRAME_DECLS))
                self.writer.write_block(func_block, body_visitor.writer.getvalue())
                self.writer.write("return πR, πE")
            self.writer.write("}), πF.Globals()).ToObject()")
            if is_method and name == constants.INITIALIZE_METHOD:
                name = constants.INIT_ATTRIBUTE
            self.block.bind_var(self.writer, name, func.expr)

    # e.g. ["class", ["const_ref", ["@const", "Foo", [1, 6]]], nil, ["bodystmt", ...]]
    def visit_class(self, node):
        name = self.expr_visitor.visit_typed_node(node[1], "const_ref")
        classifier = BlockVisitor()
        classifier.visit(node[3])
        global_vars = {
            v.name: v for v in classifier.vars.values() if v.kind == VarKind.GLOBAL
        }
        body_block = ClassBlock(self.block, name, global_vars)
        body_visitor = StatementVisitor(body_block, parent=self)
        with body_visitor.writer.indent_block():
            body_visitor.visit_typed_node(node[3], "bodystmt")

        with self.block.alloc_temp(constants.DICT_TYPE) as cls, \
                self.block.alloc_temp(constants.OBJECT_SLICE_TYPE) as bases:
            if node[2] is None:
                self.writer.write(f"{bases.name} = make([]*πg.Object, 0)")
            else:
                with self.expr_visitor.visit_expr(node[2]) as base:
                    self.writer.write(f"{bases.name} = make([]*πg.Object, 1)")
                    self.writer.write(f"{bases.name}[0] = {base.expr}")
            self.writer.write(f"{cls.name} = πg.NewDict()")

            code = Writer()
            code.write(
                f"πg.NewCode({go_str(name)}, {go_str(self.block.root.buffer.filename)}, "
                "nil, 0, func(πF *πg.Frame, _ []*πg.Object) (*πg.Object, *πg.BaseException) {"
            )
            with code.indent_block():
                code.write(f"πClass := {cls.expr}")
                code.write("_ = πClass")
                code.write_temp_decls(body_block)
                code.write("\n".join(_FRAME_DECLS))
                code.write_block(body_block, body_visitor.writer.getvalue())
                code.write("return nil, πE")
            code.write("}).Eval(πF, πF.Globals(), nil, nil)")

            with self.block.alloc_temp() as evaluated:
                self.writer.write_call_for_value(evaluated, code.getvalue().rstrip("\n"))
            with self.block.alloc_temp() as type_:
                self.writer.write_call_for_value(
                    type_,
                    "πg.TypeType.ToObject().Call(πF, []*πg.Object{"
                    f"πg.NewStr({go_str(name)}).ToObject(), "
                    f"πg.NewTuple({bases.expr}...).ToObject(), "
                    f"{cls.expr}.ToObject()}}, nil)",
                )
                self.block.bind_var(self.writer, name, type_.expr)

    # ── control flow ─────────────────────────────────────────────

    # e.g. ["if", cond, [stmts], ["elsif", cond, [stmts], ["else", [stmts]]]]
    def visit_if(self, node, implicit_return: bool = False):
        bodies = []
        clause = node
        while clause is not None and node_tag(clause) in ("if", "unless", "elsif"):
            check_arity(clause)
            label = self.block.gen_label()
            self._write_test(clause[1], label, jump_if_true=clause[0] != "unless")
            bodies.append((label, clause[2]))
            clause = clause[3]
        end_label = default_label = self.block.gen_label()
        if clause is not None:
            if node_tag(clause) != "else":
                raise CompileError(clause, f"Unexpected '{clause[0]}' clause.")
            check_arity(clause)
            end_label = self.block.gen_label()
            bodies.append((default_label, clause[1]))
        self.writer.write_goto(default_label)
        for label, body in bodies:
            self.writer.write_label(label)
            self._visit_stmts(body, implicit_return)
            self.writer.write_goto(end_label)
        self.writer.write_label(end_label)

    # e.g. ["if_mod", cond, ["command", ...]]
    def visit_if_mod(self, node, implicit_return: bool = False):
        end_label = self.block.gen_label()
        self._write_test(node[1], end_label, jump_if_true=node[0] == "unless_mod")
        self._visit_stmts([node[2]], implicit_return)
        self.writer.write_label(end_label)

    def _write_test(self, cond_node, label: int, jump_if_true: bool = True):
        with self.expr_visitor.visit_expr(cond_node) as cond, \
                self.block.alloc_temp(constants.BOOL_TYPE) as is_true:
            self.writer.write_call_for_value(is_true, f"πg.IsTrue(πF, {cond.expr})")
            self.writer.write_goto_if(
                is_true.name if jump_if_true else "!" + is_true.name, label
            )

    # e.g. ["while", cond, [stmts]] or ["while_mod", cond, stmt]
    def visit_while(self, node):
        tag = node[0]
        exit_when_true = tag in ("until", "until_mod")
        start_label = self.block.gen_label(is_checkpoint=True)
        end_label = self.block.gen_label(is_checkpoint=True)
        with self.block.alloc_temp(constants.BOOL_TYPE) as break_var:
            self.block.push_loop(break_var)
            self.writer.write(f"πF.PushCheckpoint({end_label})")
            self.writer.write(f"{break_var.name} = false")
            self.writer.write_label(start_label)
            self._write_propagate()
            self.writer.write(
                f"if {break_var.name} {{\n"
                "\tπF.PopCheckpoint()\n"
                f"\tgoto {label_name(end_label)}\n"
                "}"
            )
            with self.expr_visitor.visit_expr(node[1]) as cond, \
                    self.block.alloc_temp(constants.BOOL_TYPE) as is_true:
                self.writer.write_call_for_value(is_true, f"πg.IsTrue(πF, {cond.expr})")
                exit_cond = is_true.name if exit_when_true else "!" + is_true.name
                self.writer.write(f"if {exit_cond} {{\n\tcontinue\n}}")
            self.writer.write(f"πF.PushCheckpoint({start_label})")
            if tag.endswith("_mod"):
                self.visit(node[2])
            else:
                self.visit_each(node[2])
            self.writer.write("continue")
            self.block.pop_loop()
        self.writer.write_label(end_label)
        self._write_propagate()

    def _write_propagate(self):
        self.writer.write("if πE != nil || πR != nil {\n\tcontinue\n}")

    # e.g. ["break", []]
    def visit_break(self, node):
        if node[1]:
            raise CompileError(node, "'break' with a value is not supported.")
        loop = self.block.top_loop()
        if loop is None:
            raise CompileError(node, "'break' not in loop")
        self.writer.write(f"{loop.break_var.name} = true\ncontinue")

    def visit_next(self, node):
        if node[1]:
            raise CompileError(node, "'next' with a value is not supported.")
        if self.block.top_loop() is None:
            raise CompileError(node, "'next' not properly in loop")
        self.writer.write("continue")

    # e.g. ["return", ["args_add_block", [["@int", "1", [1, 7]]], false]]
    def visit_return(self, node):
        self._check_returnable(node)
        args = node[1]
        if is_node(args) and args[0] == "args_add_block":
            check_arity(args)
            if args[2]:
                raise CompileError(args, "Block arguments are not supported.")
            args = args[1]
        if is_node(args) or not isinstance(args, (list, tuple)) or len(args) != 1:
            raise CompileError(node, "Only a single return value is supported.")
        with self.expr_visitor.visit_expr(args[0]) as value:
            self.writer.write(f"πR = {value.expr}")
        self.writer.write("continue")

    def visit_return0(self, node):
        self._check_returnable(node)
        self.writer.write("πR = πg.None\ncontinue")

    def _check_returnable(self, node):
        if not isinstance(self.block, FunctionBlock):
            raise CompileError(node, "'return' outside function")

    # e.g. ["undef", [["symbol_literal", ["@ident", "foo", [1, 6]]]]]
    def visit_undef(self, node):
        symbols = node[1]
        if is_node(symbols) or not isinstance(symbols, (list, tuple)):
            raise CompileError(node, "Node must be a list of nodes.")
        for symbol in symbols:
            self.block.del_var(self.writer, self.expr_visitor.symbol_name(symbol), symbol)
