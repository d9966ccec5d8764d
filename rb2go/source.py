"""Source positions and the compiled unit's file name."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from . import constants


class SourceLocation(BaseModel):
    """A Ripper-style source position: 1-based line, 0-based column."""

    line: int
    column: int

    def is_unknown(self) -> bool:
        return self.line == 0 and self.column == 0

    def __str__(self) -> str:
        if self.is_unknown():
            return "<unknown>"
        return f"{self.line}:{self.column}"


NO_SOURCE_LOCATION = SourceLocation(line=0, column=0)


def _is_position(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) == 2
        and all(isinstance(v, int) and not isinstance(v, bool) for v in value)
    )


def location_of(node: Any) -> SourceLocation:
    """Return the position of the first leaf token found under *node*."""
    if _is_position(node):
        return SourceLocation(line=node[0], column=node[1])
    if isinstance(node, (list, tuple)):
        for child in node:
            if isinstance(child, (list, tuple)):
                loc = location_of(child)
                if not loc.is_unknown():
                    return loc
    return NO_SOURCE_LOCATION


class SourceBuffer:
    """The file name a compiled unit came from, as reported in its code objects."""

    def __init__(self, filename: str = constants.DEFAULT_SCRIPT):
        self.filename = filename
