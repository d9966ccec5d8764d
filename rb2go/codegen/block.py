"""Lexical scopes of the generated code and their name bindings.

A Block is one Go function body: the top level of the compiled unit, a class
body or a method body. It owns the pool of temporaries declared in that body,
the label counter for ``goto`` targets and the checkpoint/loop bookkeeping the
statement generator needs. Each variant decides where a Ruby name is bound and
how a reference to it is resolved.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from enum import Enum

from pydantic import BaseModel, model_validator

from .. import constants
from ..source import SourceBuffer
from .errors import CompileError
from .expr import Expr, LocalVar, TempVar
from .util import go_identifier, go_str
from .visitor import Visitor, child_nodes, is_node

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(constants.NON_WORD_PATTERN)


class Loop:
    """An active loop; ``break_var`` is the bool temp set by ``break``."""

    def __init__(self, break_var: Expr):
        self.break_var = break_var


class Block(ABC):
    """Base class for all lexical scopes."""

    def __init__(self, parent: Block | None = None, name: str = ""):
        self.root: TopLevelBlock = parent.root if parent else self
        self.parent = parent
        self.name = name
        self.free_temps: set[TempVar] = set()
        self.used_temps: set[TempVar] = set()
        self.temp_index = 0
        self.label_count = 0
        self.checkpoints: list[int] = []
        self.loop_stack: list[Loop] = []

    @abstractmethod
    def bind_var(self, writer, name: str, value: str):
        """Write code binding *name* to the Go expression *value*."""

    @abstractmethod
    def del_var(self, writer, name: str, node=None):
        """Write code removing the binding of *name*, deleted by *node*."""

    @abstractmethod
    def resolve_name(self, writer, name: str) -> Expr:
        """Write code looking up *name*; return the expression holding it."""

    # ── labels and loops ─────────────────────────────────────────

    def gen_label(self, is_checkpoint: bool = False) -> int:
        self.label_count += 1
        if is_checkpoint:
            self.checkpoints.append(self.label_count)
        return self.label_count

    def push_loop(self, break_var: Expr) -> Loop:
        loop = Loop(break_var)
        self.loop_stack.append(loop)
        return loop

    def pop_loop(self) -> Loop:
        return self.loop_stack.pop()

    def top_loop(self) -> Loop | None:
        return self.loop_stack[-1] if self.loop_stack else None

    # ── temporaries ──────────────────────────────────────────────

    def alloc_temp(self, type_: str = constants.OBJECT_TYPE) -> TempVar:
        """Hand out a temporary of *type_*, reusing the smallest free one by name."""
        for v in sorted(self.free_temps, key=lambda t: t.name):
            if v.type_ == type_:
                self.free_temps.remove(v)
                self.used_temps.add(v)
                return v
        self.temp_index += 1
        name = constants.TEMP_NAME_TEMPLATE.format(index=self.temp_index)
        v = TempVar(block=self, name=name, type_=type_)
        self.used_temps.add(v)
        return v

    def free_temp(self, v: TempVar):
        assert v in self.used_temps, f"{v.name} is not in use in block {self.name!r}"
        self.used_temps.remove(v)
        self.free_temps.add(v)

    # ── lookups ──────────────────────────────────────────────────

    def resolve_global(self, writer, name: str) -> TempVar:
        result = self.alloc_temp()
        writer.write_call_for_value(
            result, f"πg.ResolveGlobal(πF, {self.root.intern(name)})"
        )
        return result


class TopLevelBlock(Block):
    """The top level of a compiled unit; every name lives in the globals."""

    def __init__(self, buffer: SourceBuffer | None = None):
        super().__init__(None, "<toplevel>")
        self.strings: set[str] = set()
        self.buffer = buffer or SourceBuffer()

    def bind_var(self, writer, name: str, value: str):
        writer.write_call_for_effect(
            f"πF.Globals().SetItem(πF, {self.intern(name)}.ToObject(), {value})"
        )

    def del_var(self, writer, name: str, node=None):
        writer.write_call_for_effect(
            f"πg.DelVar(πF, πF.Globals(), {self.intern(name)})"
        )

    def resolve_name(self, writer, name: str) -> Expr:
        return self.resolve_global(writer, name)

    def intern(self, s: str) -> str:
        """Return a Go expression of type ``*πg.Str`` for *s*.

        Short identifier-like strings are declared once per unit and shared;
        anything else is constructed inline at every use.
        """
        if len(s) > constants.INTERN_MAX_LENGTH or _NON_WORD.search(s):
            return f"πg.NewStr({go_str(s)})"
        self.strings.add(s)
        return constants.INTERN_PREFIX + s


class ClassBlock(Block):
    """A class body; names become attributes of the class dict ``πClass``."""

    def __init__(self, parent: Block, name: str, global_vars: dict[str, Var]):
        super().__init__(parent, name)
        self.global_vars = global_vars

    def bind_var(self, writer, name: str, value: str):
        if name in self.global_vars:
            return self.root.bind_var(writer, name, value)
        writer.write_call_for_effect(
            f"πClass.SetItem(πF, {self.root.intern(name)}.ToObject(), {value})"
        )

    def del_var(self, writer, name: str, node=None):
        if name in self.global_vars:
            return self.root.del_var(writer, name, node)
        writer.write_call_for_effect(
            f"πg.DelVar(πF, πClass, {self.root.intern(name)})"
        )

    def resolve_name(self, writer, name: str) -> Expr:
        local = "nil"
        if name not in self.global_vars:
            block = self.parent
            while not isinstance(block, TopLevelBlock):
                if isinstance(block, FunctionBlock) and name in block.vars:
                    if block.vars[name].kind != VarKind.GLOBAL:
                        local = go_identifier(name)
                    break
                block = block.parent
        result = self.alloc_temp()
        writer.write_call_for_value(
            result,
            f"πg.ResolveClass(πF, πClass, {local}, {self.root.intern(name)})",
        )
        return result


class FunctionBlock(Block):
    """A method body; classified names live in Go locals."""

    def __init__(self, parent: Block, name: str, block_vars: dict[str, Var]):
        super().__init__(parent, name)
        self.vars = block_vars

    def bind_var(self, writer, name: str, value: str):
        if self.vars[name].kind == VarKind.GLOBAL:
            return self.root.bind_var(writer, name, value)
        writer.write(f"{go_identifier(name)} = {value}")

    def del_var(self, writer, name: str, node=None):
        var = self.vars.get(name)
        if var is None:
            raise CompileError(node, f"cannot delete nonexistent local: {name}")
        if var.kind == VarKind.GLOBAL:
            return self.root.del_var(writer, name, node)
        local = go_identifier(name)
        writer.write_call_for_effect(f"πg.CheckLocal(πF, {local}, {go_str(name)})")
        writer.write(f"{local} = {constants.UNBOUND_LOCAL}")

    def resolve_name(self, writer, name: str) -> Expr:
        block = self
        while not isinstance(block, TopLevelBlock):
            if isinstance(block, FunctionBlock):
                var = block.vars.get(name)
                if var is not None:
                    if var.kind == VarKind.GLOBAL:
                        return self.resolve_global(writer, name)
                    writer.write_call_for_effect(
                        f"πg.CheckLocal(πF, {go_identifier(name)}, {go_str(name)})"
                    )
                    return LocalVar(name)
            block = block.parent
        return self.resolve_global(writer, name)


# ── variable classification ──────────────────────────────────────


class VarKind(str, Enum):
    LOCAL = "local"
    PARAM = "param"
    GLOBAL = "global"


class Var(BaseModel):
    """How a name is stored inside one method body."""

    name: str
    kind: VarKind
    arg_index: int | None = None

    @model_validator(mode="after")
    def _check_arg_index(self) -> Var:
        if self.kind == VarKind.PARAM and self.arg_index is None:
            raise ValueError("Arguments should have arg_index.")
        if self.kind != VarKind.PARAM and self.arg_index is not None:
            raise ValueError(
                f"{self.kind.value} variables shouldn't have arg_index: {self.arg_index}."
            )
        return self

    @property
    def init_expr(self) -> str | None:
        if self.kind == VarKind.LOCAL:
            return constants.UNBOUND_LOCAL
        if self.kind == VarKind.PARAM:
            return constants.ARG_SLOT_TEMPLATE.format(index=self.arg_index)
        return None


class BlockVisitor(Visitor):
    """Walks a body once, forward, recording the kind of every bound name.

    The first binding of a name decides its kind; nested ``def`` and ``class``
    bodies are separate scopes and are not entered.
    """

    def __init__(self):
        super().__init__()
        self.vars: dict[str, Var] = {}
        self._DISPATCH = {
            "paren": self.visit_paren,
            "params": self.visit_params,
            "@ident": self.visit_ident,
            "@const": self.visit_ident,
            "const_ref": self.visit_const_ref,
            "assign": self.visit_assign,
            "opassign": self.visit_opassign,
            "def": self.visit_def,
            "class": self.visit_class,
            "bodystmt": self.visit_bodystmt,
            "void_stmt": self.visit_void_stmt,
            "var_field": self.visit_var_field,
            constants.GLOBAL_DECL_TAG: self.visit_global,
        }

    def visit_general(self, node, **context):
        for child in child_nodes(node):
            self.visit(child)

    # e.g. ["assign", ["var_field", ["@ident", "foo", [1, 0]]], ["@int", "1", [1, 6]]]
    def visit_assign(self, node):
        self._visit_target(node[1])
        self.visit(node[2])

    # e.g. ["opassign", ["var_field", ...], ["@op", "+=", [1, 2]], ["@int", "1", [1, 5]]]
    def visit_opassign(self, node):
        self._visit_target(node[1])
        self.visit(node[3])

    def _visit_target(self, target):
        name = self.visit(target)
        if isinstance(name, str):
            self._register_local(name)

    def visit_bodystmt(self, node):
        self.visit_each(node[1])

    def visit_void_stmt(self, node):
        pass

    def visit_paren(self, node):
        if is_node(node[1]):
            return self.visit(node[1])
        self.visit_each(node[1])
        return None

    # e.g. ["params", [["@ident", "a", [1, 8]]], nil, nil, nil, nil, nil, nil]
    def visit_params(self, node) -> list[str]:
        if any(node[2:]):
            raise CompileError(node, "Only required positional parameters are supported.")
        return [self.visit_typed_node(p, "@ident") for p in node[1] or []]

    def visit_ident(self, node) -> str:
        return node[1]

    def visit_const_ref(self, node) -> str:
        return self.visit_typed_node(node[1], "@const")

    def visit_var_field(self, node) -> str | None:
        inner = node[1]
        if is_node(inner) and inner[0] in ("@ident", "@const"):
            return self.visit(inner)
        return None

    def visit_def(self, node):
        name = self.visit(node[1])
        if isinstance(name, str):
            self._register_local(name)

    def visit_class(self, node):
        self._register_local(self.visit_typed_node(node[1], "const_ref"))

    # e.g. ["global", [["@ident", "counter", [2, 9]]]]
    def visit_global(self, node):
        for ident in node[1]:
            self._register_global(node, self.visit_typed_node(ident, "@ident"))

    def _register_global(self, node, name: str):
        var = self.vars.get(name)
        if var is None:
            self.vars[name] = Var(name=name, kind=VarKind.GLOBAL)
        elif var.kind == VarKind.PARAM:
            raise CompileError(node, f"name '{name}' is parameter.")
        elif var.kind == VarKind.LOCAL:
            raise CompileError(
                node, f"name '{name}' is used before the global declaration."
            )

    def _register_local(self, name: str):
        if name not in self.vars:
            self.vars[name] = Var(name=name, kind=VarKind.LOCAL)


class FunctionBlockVisitor(BlockVisitor):
    """Classifies a method's parameters, then (via ``visit``) its body."""

    def __init__(self, node, is_method: bool = False):
        super().__init__()
        args = list(self.visit(node[2]) or [])
        if is_method:
            args.insert(0, constants.RECEIVER_NAME)
        for i, name in enumerate(args):
            if name in self.vars:
                raise CompileError(node, "Duplicate arguments are used in the same function.")
            self.vars[name] = Var(name=name, kind=VarKind.PARAM, arg_index=i)
