"""Handles for generated Go expressions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .util import go_identifier

if TYPE_CHECKING:
    from .block import Block


class Expr:
    """An expression in generated Go code, usable inline as an operand.

    Exprs are context managers: leaving the ``with`` block releases whatever
    pooled resource the expression holds.
    """

    def __init__(self, name: str = "", type_: str | None = None, expr: str = ""):
        self.name = name
        self.type_ = type_
        self.expr = expr

    def free(self):
        pass

    def __enter__(self) -> Expr:
        return self

    def __exit__(self, *exc_info) -> None:
        self.free()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.expr!r})"


class TempVar(Expr):
    """An expression result stored in a pooled temporary of its block."""

    def __init__(self, block: Block, name: str, type_: str):
        super().__init__(name=name, type_=type_, expr=name)
        self.block = block

    def free(self):
        self.block.free_temp(self)


class LocalVar(Expr):
    """The Go local backing a Ruby method-local variable."""

    def __init__(self, name: str):
        super().__init__(name=name, expr=go_identifier(name))


class Literal(Expr):
    """Fixed Go text with no associated resource."""

    def __init__(self, expr: str):
        super().__init__(expr=expr)


NIL_EXPR = Literal("nil")
NONE_EXPR = Literal("πg.None")
TRUE_EXPR = Literal("πg.True.ToObject()")
FALSE_EXPR = Literal("πg.False.ToObject()")
