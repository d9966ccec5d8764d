"""Compilation configuration types (pure data, no business logic)."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from . import constants


@dataclass(frozen=True)
class CompilerConfig:
    """Groups per-unit compilation settings."""

    unit_name: str = constants.DEFAULT_UNIT_NAME
    script: str = constants.DEFAULT_SCRIPT
    log_level: str = constants.DEFAULT_LOG_LEVEL

    @classmethod
    def for_path(cls, path: str | Path, log_level: str = constants.DEFAULT_LOG_LEVEL):
        """Derive the unit name and script from a source file path."""
        path = Path(path)
        return cls(
            unit_name=unit_name_for(path.stem),
            script=str(path),
            log_level=log_level,
        )


def unit_name_for(stem: str) -> str:
    """Turn a file stem into a Go package / module name."""
    name = re.sub(r"\W", "_", stem, flags=re.ASCII)
    if not name or name[0].isdigit():
        name = "_" + name
    return name
