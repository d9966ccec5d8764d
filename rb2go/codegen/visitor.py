"""Visitor — tag → handler dispatch over Ripper-shaped tagged nodes.

A node is a sequence whose first element is a string tag, e.g.::

    ["binary", ["@int", "1", [1, 0]], "+", ["@int", "1", [1, 4]]]

Subclasses populate ``self._DISPATCH`` in ``__init__``; the table is fixed for
the lifetime of the visitor. Tags with a fixed arity are validated here before
any handler destructures the node.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Callable, Iterator

from .errors import CompileError
from .expr import Expr

logger = logging.getLogger(__name__)

_LEAF_TOKENS = (
    "@ident",
    "@const",
    "@kw",
    "@int",
    "@float",
    "@ivar",
    "@gvar",
    "@label",
    "@tstring_content",
    "@op",
    "@period",
)

NODE_ARITY: dict[str, int] = {
    # statements
    "program": 2,
    "bodystmt": 5,
    "void_stmt": 1,
    "def": 4,
    "class": 4,
    "params": 8,
    "paren": 2,
    "if": 4,
    "unless": 4,
    "elsif": 4,
    "else": 2,
    "if_mod": 3,
    "unless_mod": 3,
    "while": 3,
    "until": 3,
    "while_mod": 3,
    "until_mod": 3,
    "break": 2,
    "next": 2,
    "return": 2,
    "return0": 1,
    "undef": 2,
    "global": 2,
    # expressions
    "assign": 3,
    "opassign": 4,
    "binary": 4,
    "unary": 3,
    "ifop": 4,
    "var_ref": 2,
    "var_field": 2,
    "aref": 3,
    "aref_field": 3,
    "field": 4,
    "array": 2,
    "hash": 2,
    "assoclist_from_args": 2,
    "assoc_new": 3,
    "string_literal": 2,
    "symbol_literal": 2,
    "symbol": 2,
    "method_add_arg": 3,
    "fcall": 2,
    "vcall": 2,
    "call": 4,
    "command": 3,
    "command_call": 5,
    "arg_paren": 2,
    "args_add_block": 3,
    "const_ref": 2,
    **{tag: 3 for tag in _LEAF_TOKENS},
}


def is_node(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) > 0
        and isinstance(value[0], str)
    )


def node_tag(node: Any) -> str:
    if not is_node(node):
        raise CompileError(node, "Node must be a tagged sequence.")
    return node[0]


def check_arity(node: Any) -> None:
    expected = NODE_ARITY.get(node_tag(node))
    if expected is not None and len(node) != expected:
        raise CompileError(node, f"Node size must be {expected}.")


def child_nodes(node: Any) -> Iterator[Any]:
    """Yield every tagged node directly under *node*, looking through plain lists."""
    for child in node[1:]:
        yield from _nodes_in(child)


def _nodes_in(value: Any) -> Iterator[Any]:
    if is_node(value):
        yield value
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _nodes_in(item)


class Visitor:
    """Base class for tag-dispatching visitors."""

    def __init__(self, block=None, writer=None, parent: Visitor | None = None):
        self.block = block
        self.writer = writer
        self.parent = parent
        self._DISPATCH: dict[str, Callable] = {}

    # ── dispatch ─────────────────────────────────────────────────

    def visit(self, node, **context):
        tag = node_tag(node)
        check_arity(node)
        handler = self._DISPATCH.get(tag)
        if handler is None:
            return self.visit_general(node, **context)
        return handler(node, **context)

    def visit_typed_node(self, node, expected: str, **context):
        """Visit *node*, which must carry the tag *expected*."""
        tag = node_tag(node)
        if tag != expected:
            raise CompileError(
                node, f"Node type must be '{expected}' but was '{tag}'."
            )
        return self.visit(node, **context)

    def visit_each(self, nodes) -> list:
        """Visit every node of an untagged statement list."""
        if nodes is None:
            return []
        if is_node(nodes) or not isinstance(nodes, (list, tuple)):
            raise CompileError(nodes, "Node must be a list of nodes.")
        return [self.visit(n) for n in nodes]

    def visit_general(self, node, **context):
        logger.debug("No handler for '%s' in %s", node[0], type(self).__name__)
        return None

    # ── temporaries ──────────────────────────────────────────────

    @contextlib.contextmanager
    def scoped(self, *exprs: Expr | None) -> Iterator[tuple]:
        """Yield *exprs* to the body, then release every temporary among them."""
        try:
            yield exprs
        finally:
            for e in exprs:
                if e is not None:
                    e.free()
