#!/usr/bin/env python3
"""Compile Ruby (or a Ripper sexp) to Go on the grumpy runtime."""
from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys

from rb2go import constants
from rb2go.api import dump_sexp, load_sexp, parse_source
from rb2go.compile_types import CompilerConfig
from rb2go.compiler import Compiler


def _read_source(source: str) -> tuple[str, bool]:
    """Return the text of SOURCE and whether it named a file."""
    if os.path.isfile(source):
        with open(source, encoding="utf-8") as f:
            return f.read(), True
    return source, False


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        description="Compile Ruby source to Go code for the grumpy runtime")
    parser.add_argument("source",
                        help="Ruby source file, or Ruby source text")
    parser.add_argument("--sexp", action="store_true",
                        help="SOURCE holds a Ripper sexp as JSON instead of Ruby")
    parser.add_argument("--unit", "-u", default=None,
                        help="Go package and module name (default: from file name)")
    parser.add_argument("--output", "-o", default=None,
                        help="Write Go code to this file (default: stdout)")
    parser.add_argument("--log-level", default=constants.DEFAULT_LOG_LEVEL,
                        choices=sorted(constants.LOG_LEVELS),
                        help="Diagnostic verbosity (default: info)")
    parser.add_argument("--dump-sexp", action="store_true",
                        help="Only print the parsed tree as JSON")

    args = parser.parse_args(argv)

    logging.basicConfig(level=constants.LOG_LEVELS[args.log_level],
                        format="%(levelname)s: %(name)s: %(message)s",
                        stream=sys.stderr)

    text, is_file = _read_source(args.source)
    if is_file:
        config = CompilerConfig.for_path(args.source, args.log_level)
    else:
        config = CompilerConfig(log_level=args.log_level)
    if args.unit:
        config = dataclasses.replace(config, unit_name=args.unit)

    tree = load_sexp(text) if args.sexp else parse_source(text)

    if args.dump_sexp:
        print(dump_sexp(tree))
        return

    if args.output:
        with open(args.output, "w", encoding="utf-8") as out:
            Compiler(config).generate(tree, stream=out)
    else:
        Compiler(config).generate(tree, stream=sys.stdout)


if __name__ == "__main__":
    main()
