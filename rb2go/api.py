"""Composable API functions for the Ruby-to-Go pipeline.

Each function corresponds to a CLI workflow (compile source, compile a file,
compile a Ripper JSON tree, dump the parsed tree) but is callable
programmatically without argparse.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .compile_types import CompilerConfig
from .compiler import Compiler
from .frontend import parse_ruby

logger = logging.getLogger(__name__)


def parse_source(source: str) -> list:
    """Parse Ruby source into a Ripper-shaped tagged tree.

    Args:
        source: The Ruby source text.

    Returns:
        The ``program`` node.
    """
    return parse_ruby(source)


def load_sexp(text: str) -> Any:
    """Decode a tree serialized as JSON (e.g. ``Ripper.sexp(src).to_json``)."""
    return json.loads(text)


def dump_sexp(tree: Any) -> str:
    """Serialize a tagged tree as JSON."""
    return json.dumps(tree)


def compile_source(source: str, config: CompilerConfig = CompilerConfig()) -> str:
    """Compile Ruby source text to Go source text.

    Args:
        source: The Ruby source text.
        config: Unit name and script name for the generated module.

    Returns:
        The generated Go source.
    """
    logger.info("Compiling source as unit %s", config.unit_name)
    return Compiler(config).compile(source)


def compile_file(path: str | Path, unit_name: str | None = None) -> str:
    """Compile a Ruby file; the unit name defaults to the file's stem."""
    config = CompilerConfig.for_path(path)
    if unit_name:
        config = CompilerConfig(unit_name=unit_name, script=config.script)
    return Compiler(config).compile_file(path)


def compile_sexp(tree: Any, config: CompilerConfig = CompilerConfig()) -> str:
    """Compile an already parsed Ripper tree to Go source text.

    Args:
        tree: The ``program`` node, or its JSON text.
        config: Unit name and script name for the generated module.

    Returns:
        The generated Go source.
    """
    if isinstance(tree, str):
        tree = load_sexp(tree)
    logger.info("Compiling tree as unit %s", config.unit_name)
    return Compiler(config).generate(tree)
