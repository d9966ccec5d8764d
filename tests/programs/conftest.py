"""Shared helpers for the whole-program compilation suite."""

import logging
import re

from rb2go.compile_types import CompilerConfig
from rb2go.compiler import Compiler

logger = logging.getLogger(__name__)

_GO_STRING = re.compile(r'"(?:\\.|[^"\\])*"')
_LABEL_DEF = re.compile(r"^\t*(Label\d+):$", re.MULTILINE)
_LABEL_REF = re.compile(r"goto (Label\d+)")
_TEMP_USE = re.compile(r"πTemp\d{3}")
_TEMP_DECL = re.compile(r"^\t*var (πTemp\d{3}) ", re.MULTILINE)


def compile_program(source: str, unit_name: str = "prog") -> str:
    """Compile Ruby *source* through the tree-sitter front end."""
    config = CompilerConfig(unit_name=unit_name, script=f"{unit_name}.rb")
    go = Compiler(config).compile(source)
    logger.info("Compiled %s: %d lines of Go", unit_name, go.count("\n"))
    return go


def assert_well_formed(go: str, unit_name: str = "prog") -> None:
    """Run the structural assertion battery on one generated unit."""
    # Tier 1: package and module registration
    assert go.startswith(f"package {unit_name}\n")
    assert go.endswith(f'\tπg.RegisterModule("{unit_name}", Code)\n}}\n')

    # Tier 2: braces balance once string literals are removed
    code = _GO_STRING.sub('""', go)
    assert code.count("{") == code.count("}"), "unbalanced braces"
    assert code.count("(") == code.count(")"), "unbalanced parentheses"

    # Tier 3: every label is both defined and jumped to
    defined = set(_LABEL_DEF.findall(go))
    referenced = set(_LABEL_REF.findall(go))
    assert referenced <= defined, f"goto without label: {referenced - defined}"
    assert defined <= referenced, f"unused labels: {defined - referenced}"

    # Tier 4: every temporary is declared
    used = set(_TEMP_USE.findall(go))
    declared = set(_TEMP_DECL.findall(go))
    assert used <= declared, f"undeclared temporaries: {used - declared}"


def count_checked_calls(go: str) -> int:
    """Number of runtime calls whose error is checked."""
    return go.count("; πE != nil {")
