"""The single error kind raised by the code generator."""

from __future__ import annotations

from typing import Any

from ..source import location_of


def node_label(node: Any) -> str:
    if isinstance(node, (list, tuple)) and node and isinstance(node[0], str):
        return node[0]
    if node is None:
        return "<no node>"
    return type(node).__name__


class CompileError(Exception):
    """A user-input error bound to the offending node; aborts the compilation."""

    def __init__(self, node: Any, msg: str = ""):
        self.node = node
        self.msg = msg
        self.location = location_of(node)
        super().__init__(f"{msg} [{node_label(node)} at {self.location}]")
