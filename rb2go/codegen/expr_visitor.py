"""ExprVisitor — lowers Ruby expressions to Go statements plus a result Expr.

Every handler writes whatever Go statements the expression needs to the
owning statement visitor's writer and returns the Expr holding the value.
Temporaries are released as soon as their value has been consumed.
"""

from __future__ import annotations

import logging

from .. import constants
from .errors import CompileError
from .expr import FALSE_EXPR, NIL_EXPR, NONE_EXPR, TRUE_EXPR, Expr, Literal, TempVar
from .util import INT64_MAX, INT64_MIN, format_float_literal, parse_int_literal
from .visitor import Visitor, check_arity, is_node, node_tag

logger = logging.getLogger(__name__)

_NAME_TOKENS = frozenset({"@ident", "@const", "@kw", "@op"})
_CALL_OPERATORS = frozenset({".", "::"})


class ExprVisitor(Visitor):
    """Builds Go code for expressions inside the statement visitor's block."""

    BIN_OP_TEMPLATES: dict[str, str] = {
        "&": "πg.And(πF, {lhs}, {rhs})",
        "|": "πg.Or(πF, {lhs}, {rhs})",
        "^": "πg.Xor(πF, {lhs}, {rhs})",
        "+": "πg.Add(πF, {lhs}, {rhs})",
        "-": "πg.Sub(πF, {lhs}, {rhs})",
        "*": "πg.Mul(πF, {lhs}, {rhs})",
        "/": "πg.Div(πF, {lhs}, {rhs})",
        "%": "πg.Mod(πF, {lhs}, {rhs})",
        "**": "πg.Pow(πF, {lhs}, {rhs})",
        "<<": "πg.LShift(πF, {lhs}, {rhs})",
        ">>": "πg.RShift(πF, {lhs}, {rhs})",
        "==": "πg.Eq(πF, {lhs}, {rhs})",
        "!=": "πg.NE(πF, {lhs}, {rhs})",
        "<": "πg.LT(πF, {lhs}, {rhs})",
        "<=": "πg.LE(πF, {lhs}, {rhs})",
        ">": "πg.GT(πF, {lhs}, {rhs})",
        ">=": "πg.GE(πF, {lhs}, {rhs})",
    }

    UNARY_OP_TEMPLATES: dict[str, str] = {
        "-@": "πg.Neg(πF, {operand})",
        "+@": "πg.Pos(πF, {operand})",
        "~": "πg.Invert(πF, {operand})",
    }

    # operator -> whether evaluation stops when the left side is truthy
    SHORT_CIRCUIT_OPS: dict[str, bool] = {
        "||": True,
        "or": True,
        "&&": False,
        "and": False,
    }

    LOGICAL_NOT_OPS = frozenset({"!", "not"})

    def __init__(self, stmt_visitor):
        super().__init__(
            block=stmt_visitor.block, writer=stmt_visitor.writer, parent=stmt_visitor
        )
        self._DISPATCH = {
            "binary": self.visit_binary,
            "unary": self.visit_unary,
            "ifop": self.visit_ifop,
            "paren": self.visit_paren,
            "var_ref": self.visit_var_ref,
            "@kw": self.visit_kw,
            "@ident": self.visit_ident,
            "@const": self.visit_ident,
            "const_ref": self.visit_const_ref,
            "@int": self.visit_int,
            "@float": self.visit_float,
            "string_literal": self.visit_string_literal,
            "string_content": self.visit_string_content,
            "@tstring_content": self.visit_tstring_content,
            "symbol_literal": self.visit_symbol_literal,
            "@label": self.visit_label,
            "array": self.visit_array,
            "hash": self.visit_hash,
            "assoclist_from_args": self.visit_assoclist_from_args,
            "assoc_new": self.visit_assoc_new,
            "aref": self.visit_aref,
            "assign": self.visit_assign,
            "opassign": self.visit_opassign,
            "method_add_arg": self.visit_method_add_arg,
            "arg_paren": self.visit_arg_paren,
            "args_add_block": self.visit_args_add_block,
            "fcall": self.visit_fcall,
            "vcall": self.visit_vcall,
            "call": self.visit_call,
            "command": self.visit_command,
            "command_call": self.visit_command_call,
        }

    def visit_expr(self, node) -> Expr:
        """Visit *node* and insist that it produced a value."""
        result = self.visit(node)
        if not isinstance(result, Expr):
            raise CompileError(
                node, f"'{node_tag(node)}' is not supported as an expression."
            )
        return result

    def _intern(self, name: str) -> str:
        return self.block.root.intern(name)

    # ── operators ────────────────────────────────────────────────

    # e.g. ["binary", ["@int", "1", [1, 0]], "+", ["@int", "1", [1, 4]]]
    def visit_binary(self, node) -> Expr:
        operator = node[2]
        if node[1] is None or node[3] is None:
            raise CompileError(node, "There is lack of operands.")
        if operator in self.SHORT_CIRCUIT_OPS:
            return self._visit_short_circuit(node, self.SHORT_CIRCUIT_OPS[operator])
        with self.scoped(self.visit_expr(node[1]), self.visit_expr(node[3])) as (
            lhs,
            rhs,
        ):
            result = self.block.alloc_temp()
            if operator in self.BIN_OP_TEMPLATES:
                call = self.BIN_OP_TEMPLATES[operator].format(lhs=lhs.expr, rhs=rhs.expr)
                self.writer.write_call_for_value(result, call)
            elif operator == "===":
                self.writer.write(
                    f"{result.name} = πg.GetBool({lhs.expr} == {rhs.expr}).ToObject()"
                )
            else:
                raise CompileError(node, f"The operator '{operator}' is not supported.")
        return result

    def _visit_short_circuit(self, node, stop_when_true: bool) -> Expr:
        result = self.block.alloc_temp()
        end_label = self.block.gen_label()
        with self.block.alloc_temp(constants.BOOL_TYPE) as is_true:
            with self.visit_expr(node[1]) as lhs:
                self.writer.write(f"{result.name} = {lhs.expr}")
            self.writer.write_call_for_value(is_true, f"πg.IsTrue(πF, {result.expr})")
            cond = is_true.name if stop_when_true else "!" + is_true.name
            self.writer.write_goto_if(cond, end_label)
            with self.visit_expr(node[3]) as rhs:
                self.writer.write(f"{result.name} = {rhs.expr}")
        self.writer.write_label(end_label)
        return result

    # e.g. ["unary", "-@", ["var_ref", ["@ident", "x", [1, 1]]]]
    def visit_unary(self, node) -> Expr:
        operator = node[1]
        if node[2] is None:
            raise CompileError(node, "There is lack of operands.")
        with self.visit_expr(node[2]) as operand:
            result = self.block.alloc_temp()
            if operator in self.UNARY_OP_TEMPLATES:
                call = self.UNARY_OP_TEMPLATES[operator].format(operand=operand.expr)
                self.writer.write_call_for_value(result, call)
            elif operator in self.LOGICAL_NOT_OPS:
                with self.block.alloc_temp(constants.BOOL_TYPE) as is_true:
                    self.writer.write_call_for_value(
                        is_true, f"πg.IsTrue(πF, {operand.expr})"
                    )
                    self.writer.write(
                        f"{result.name} = πg.GetBool(!{is_true.name}).ToObject()"
                    )
            else:
                raise CompileError(node, f"The operator '{operator}' is not supported.")
        return result

    # e.g. ["ifop", cond, ["@int", "1", [1, 6]], ["@int", "2", [1, 10]]]
    def visit_ifop(self, node) -> Expr:
        result = self.block.alloc_temp()
        else_label = self.block.gen_label()
        end_label = self.block.gen_label()
        with self.scoped(
            self.visit_expr(node[1]), self.block.alloc_temp(constants.BOOL_TYPE)
        ) as (cond, is_true):
            self.writer.write_call_for_value(is_true, f"πg.IsTrue(πF, {cond.expr})")
            self.writer.write_goto_if("!" + is_true.name, else_label)
        with self.visit_expr(node[2]) as value:
            self.writer.write(f"{result.name} = {value.expr}")
        self.writer.write_goto(end_label)
        self.writer.write_label(else_label)
        with self.visit_expr(node[3]) as value:
            self.writer.write(f"{result.name} = {value.expr}")
        self.writer.write_label(end_label)
        return result

    # e.g. ["paren", [["binary", ...]]]
    def visit_paren(self, node) -> Expr:
        stmts = node[1]
        if is_node(stmts):
            return self.visit_expr(stmts)
        if not stmts:
            return NONE_EXPR
        for stmt in stmts[:-1]:
            self.parent.visit(stmt)
        if node_tag(stmts[-1]) == "void_stmt":
            return NONE_EXPR
        return self.visit_expr(stmts[-1])

    # ── names ────────────────────────────────────────────────────

    def visit_ident(self, node) -> str:
        return node[1]

    def visit_const_ref(self, node) -> str:
        return self.visit_typed_node(node[1], "@const")

    def visit_kw(self, node) -> Expr:
        keyword = node[1]
        if keyword == "true":
            return TRUE_EXPR
        if keyword == "false":
            return FALSE_EXPR
        if keyword == "nil":
            return NONE_EXPR
        if keyword == constants.RECEIVER_NAME:
            return self.block.resolve_name(self.writer, keyword)
        raise CompileError(node, f"The keyword '{keyword}' is not supported.")

    # e.g. ["var_ref", ["@ident", "foo", [2, 0]]]
    def visit_var_ref(self, node) -> Expr:
        var_node = node[1]
        tag = node_tag(var_node)
        check_arity(var_node)
        if tag in ("@ident", "@const"):
            return self.block.resolve_name(self.writer, self.visit(var_node))
        if tag == "@kw":
            return self.visit(var_node)
        if tag == "@gvar":
            return self.block.resolve_global(self.writer, var_node[1])
        if tag == "@ivar":
            with self._receiver() as receiver:
                result = self.block.alloc_temp()
                self.writer.write_call_for_value(
                    result,
                    f"πg.GetAttr(πF, {receiver.expr}, {self._intern(var_node[1])}, nil)",
                )
            return result
        raise CompileError(node, f"'{tag}' is unexpected variable type in this context.")

    def _receiver(self) -> Expr:
        return self.block.resolve_name(self.writer, constants.RECEIVER_NAME)

    # ── literals ─────────────────────────────────────────────────

    # e.g. ["@int", "0x1f", [1, 0]]
    def visit_int(self, node) -> Literal:
        try:
            value = parse_int_literal(node[1])
        except ValueError as e:
            raise CompileError(node, f"Malformed integer literal '{node[1]}'.") from e
        if not INT64_MIN <= value <= INT64_MAX:
            raise CompileError(node, f"Integer literal '{node[1]}' is out of range.")
        return Literal(f"πg.NewInt({value}).ToObject()")

    def visit_float(self, node) -> Literal:
        try:
            value = format_float_literal(node[1])
        except ValueError as e:
            raise CompileError(node, f"Malformed float literal '{node[1]}'.") from e
        return Literal(f"πg.NewFloat({value}).ToObject()")

    # e.g. ["string_literal", ["string_content", ["@tstring_content", "hi", [1, 1]]]]
    def visit_string_literal(self, node) -> Literal:
        return self.visit_typed_node(node[1], "string_content")

    def visit_string_content(self, node) -> Literal:
        pieces = []
        for part in node[1:]:
            if node_tag(part) != "@tstring_content":
                raise CompileError(part, "String interpolation is not supported.")
            check_arity(part)
            pieces.append(part[1])
        return self._str_literal("".join(pieces))

    def visit_tstring_content(self, node) -> Literal:
        return self._str_literal(node[1])

    # e.g. ["symbol_literal", ["symbol", ["@ident", "foo", [1, 1]]]]
    def visit_symbol_literal(self, node) -> Literal:
        return self._str_literal(self.symbol_name(node))

    # e.g. ["@label", "key:", [1, 2]]
    def visit_label(self, node) -> Literal:
        return self._str_literal(node[1].removesuffix(":"))

    def symbol_name(self, node) -> str:
        """Return the bare name of a symbol literal, with or without the symbol wrapper."""
        if node_tag(node) != "symbol_literal":
            raise CompileError(node, "Symbol literal is expected.")
        check_arity(node)
        inner = node[1]
        if node_tag(inner) == "symbol":
            check_arity(inner)
            inner = inner[1]
        tag = node_tag(inner)
        if tag not in _NAME_TOKENS and tag not in ("@ivar", "@gvar"):
            raise CompileError(inner, f"'{tag}' is not supported in a symbol.")
        check_arity(inner)
        return inner[1]

    def _str_literal(self, s: str) -> Literal:
        return Literal(f"{self._intern(s)}.ToObject()")

    # ── collections ──────────────────────────────────────────────

    # e.g. ["array", [["@int", "1", [1, 1]], ["@int", "2", [1, 4]]]]
    def visit_array(self, node) -> Expr:
        with self._visit_elements(node, node[1] or []) as elems:
            result = self.block.alloc_temp()
            self.writer.write(f"{result.name} = πg.NewList({elems.expr}...).ToObject()")
        return result

    def _visit_elements(self, node, elements) -> TempVar:
        if is_node(elements) or not isinstance(elements, (list, tuple)):
            raise CompileError(node, "Splat and word arrays are not supported.")
        result = self.block.alloc_temp(constants.OBJECT_SLICE_TYPE)
        self.writer.write(f"{result.name} = make([]*πg.Object, {len(elements)})")
        for i, element in enumerate(elements):
            with self.visit_expr(element) as value:
                self.writer.write(f"{result.name}[{i}] = {value.expr}")
        return result

    # e.g. ["hash", ["assoclist_from_args", [["assoc_new", key, value]]]]
    def visit_hash(self, node) -> Expr:
        with self.block.alloc_temp(constants.DICT_TYPE) as hash_:
            self.writer.write(f"{hash_.name} = πg.NewDict()")
            if node[1] is not None:
                self.visit_typed_node(node[1], "assoclist_from_args", hash_=hash_)
            result = self.block.alloc_temp()
            self.writer.write(f"{result.name} = {hash_.expr}.ToObject()")
        return result

    def visit_assoclist_from_args(self, node, hash_: Expr):
        pairs = node[1]
        if is_node(pairs) or not isinstance(pairs, (list, tuple)):
            raise CompileError(node, "Node must be a list of nodes.")
        for pair in pairs:
            self.visit_typed_node(pair, "assoc_new", hash_=hash_)

    def visit_assoc_new(self, node, hash_: Expr):
        with self.visit_expr(node[1]) as key, self.visit_expr(node[2]) as value:
            self.writer.write_call_for_effect(
                f"{hash_.expr}.SetItem(πF, {key.expr}, {value.expr})"
            )

    # e.g. ["aref", ["var_ref", ["@ident", "a", [1, 0]]], ["args_add_block", [["@int", "0", [1, 2]]], false]]
    def visit_aref(self, node) -> Expr:
        with self.visit_expr(node[1]) as obj, self._visit_index(node) as index:
            result = self.block.alloc_temp()
            self.writer.write_call_for_value(
                result, f"πg.GetItem(πF, {obj.expr}, {index.expr})"
            )
        return result

    def _visit_index(self, node) -> Expr:
        args = node[2]
        if args is None:
            raise CompileError(node, "Index is missing.")
        if node_tag(args) != "args_add_block":
            raise CompileError(args, "Only a single index is supported.")
        check_arity(args)
        if args[2] or not isinstance(args[1], (list, tuple)) or len(args[1]) != 1:
            raise CompileError(args, "Only a single index is supported.")
        return self.visit_expr(args[1][0])

    # ── assignment ───────────────────────────────────────────────

    # e.g. ["assign", ["var_field", ["@ident", "foo", [1, 0]]], ["@int", "1", [1, 6]]]
    def visit_assign(self, node) -> Expr:
        value = self.visit_expr(node[2])
        self._bind_target(node[1], value)
        return value

    # e.g. ["opassign", ["var_field", ["@ident", "x", [1, 0]]], ["@op", "+=", [1, 2]], ["@int", "1", [1, 5]]]
    def visit_opassign(self, node) -> Expr:
        target, op_node = node[1], node[2]
        if node_tag(op_node) != "@op":
            raise CompileError(op_node, "Assignment operator is expected.")
        check_arity(op_node)
        if node_tag(target) != "var_field":
            raise CompileError(target, "Compound assignment is only supported on variables.")
        check_arity(target)
        operator = op_node[1].removesuffix("=")
        value = self.visit_binary(["binary", ["var_ref", target[1]], operator, node[3]])
        self._bind_target(target, value)
        return value

    def _bind_target(self, target, value: Expr):
        tag = node_tag(target)
        check_arity(target)
        if tag == "var_field":
            self._bind_variable(target, value)
        elif tag == "aref_field":
            with self.visit_expr(target[1]) as obj, self._visit_index(target) as index:
                self.writer.write_call_for_effect(
                    f"πg.SetItem(πF, {obj.expr}, {index.expr}, {value.expr})"
                )
        elif tag == "field":
            self._check_call_operator(target, target[2])
            attr = self.method_name(target[3])
            with self.visit_expr(target[1]) as obj:
                self.writer.write_call_for_effect(
                    f"πg.SetAttr(πF, {obj.expr}, {self._intern(attr)}, {value.expr})"
                )
        else:
            raise CompileError(target, f"Cannot assign to '{tag}'.")

    def _bind_variable(self, target, value: Expr):
        inner = target[1]
        tag = node_tag(inner)
        check_arity(inner)
        name = inner[1]
        if tag in ("@ident", "@const"):
            self.block.bind_var(self.writer, name, value.expr)
        elif tag == "@gvar":
            self.block.root.bind_var(self.writer, name, value.expr)
        elif tag == "@ivar":
            with self._receiver() as receiver:
                self.writer.write_call_for_effect(
                    f"πg.SetAttr(πF, {receiver.expr}, {self._intern(name)}, {value.expr})"
                )
        else:
            raise CompileError(target, f"Cannot assign to '{tag}'.")

    # ── calls ────────────────────────────────────────────────────

    # e.g. ["method_add_arg", ["fcall", ["@ident", "foo", [1, 0]]], ["arg_paren", ["args_add_block", [["@int", "1", [1, 4]]], false]]]
    def visit_method_add_arg(self, node) -> Expr:
        argc, argv = self.visit_typed_node(node[2], "arg_paren")
        callee = self._visit_callee(node[1])
        return self._write_call(callee, argc, argv)

    # e.g. ["command", ["@ident", "puts", [1, 0]], ["args_add_block", [["@int", "1", [1, 5]]], false]]
    def visit_command(self, node) -> Expr:
        argc, argv = self.visit_typed_node(node[2], "args_add_block")
        callee = self.block.resolve_name(self.writer, self.method_name(node[1]))
        return self._write_call(callee, argc, argv)

    # e.g. ["command_call", recv, ".", ["@ident", "push", [1, 2]], ["args_add_block", [...], false]]
    def visit_command_call(self, node) -> Expr:
        argc, argv = 0, NIL_EXPR
        if node[4] is not None:
            argc, argv = self.visit_typed_node(node[4], "args_add_block")
        callee = self._visit_callee(["call", node[1], node[2], node[3]])
        return self._write_call(callee, argc, argv)

    # e.g. ["call", ["var_ref", ["@const", "Foo", [1, 0]]], ".", ["@ident", "new", [1, 4]]]
    def visit_call(self, node) -> Expr:
        return self._write_call(self._visit_callee(node), 0, NIL_EXPR)

    def visit_fcall(self, node) -> Expr:
        return self.block.resolve_name(self.writer, self.method_name(node[1]))

    def visit_vcall(self, node) -> Expr:
        callee = self.block.resolve_name(self.writer, self.method_name(node[1]))
        return self._write_call(callee, 0, NIL_EXPR)

    def visit_arg_paren(self, node) -> tuple[int, Expr]:
        if node[1] is None:
            return 0, NIL_EXPR
        return self.visit_typed_node(node[1], "args_add_block")

    # e.g. ["args_add_block", [["@int", "1", [1, 4]], ["@int", "2", [1, 7]]], false]
    def visit_args_add_block(self, node) -> tuple[int, Expr]:
        args, block_arg = node[1], node[2]
        if block_arg:
            raise CompileError(node, "Block arguments are not supported.")
        if is_node(args) or not isinstance(args, (list, tuple)):
            raise CompileError(node, "Splat arguments are not supported.")
        if not args:
            return 0, NIL_EXPR
        argv = self.block.alloc_temp(constants.OBJECT_SLICE_TYPE)
        self.writer.write(f"{argv.name} = πF.MakeArgs({len(args)})")
        for i, arg in enumerate(args):
            with self.visit_expr(arg) as value:
                self.writer.write(f"{argv.name}[{i}] = {value.expr}")
        return len(args), argv

    def _visit_callee(self, node) -> Expr:
        if node_tag(node) != "call":
            return self.visit_expr(node)
        check_arity(node)
        self._check_call_operator(node, node[2])
        method = node[3]
        # "Foo.new" calls the class itself; "f.()" calls the receiver
        if method == "call" or self.method_name(method) == constants.CONSTRUCTOR_SUGAR:
            return self.visit_expr(node[1])
        with self.visit_expr(node[1]) as obj:
            result = self.block.alloc_temp()
            self.writer.write_call_for_value(
                result,
                f"πg.GetAttr(πF, {obj.expr}, {self._intern(self.method_name(method))}, nil)",
            )
        return result

    def _write_call(self, callee: Expr, argc: int, argv: Expr) -> Expr:
        with self.scoped(argv, callee):
            result = self.block.alloc_temp()
            self.writer.write_call_for_value(
                result, f"{callee.expr}.Call(πF, {argv.expr}, nil)"
            )
            if argc > 0:
                self.writer.write(f"πF.FreeArgs({argv.expr})")
        return result

    def method_name(self, node) -> str:
        tag = node_tag(node)
        if tag not in _NAME_TOKENS:
            raise CompileError(node, f"'{tag}' is not supported as a method name.")
        check_arity(node)
        return node[1]

    def _check_call_operator(self, node, operator):
        if is_node(operator):
            check_arity(operator)
            operator = operator[1]
        if operator not in _CALL_OPERATORS:
            raise CompileError(node, f"The call operator '{operator}' is not supported.")
