"""Drives one compilation of one Ruby unit into Go source."""

from __future__ import annotations

import dataclasses
import logging
import pprint
from pathlib import Path
from typing import IO

from . import constants
from .codegen.block import TopLevelBlock
from .codegen.stmt_visitor import StatementVisitor
from .codegen.util import go_str
from .codegen.writer import Writer
from .compile_types import CompilerConfig
from .frontend import ParserFactory, parse_ruby
from .source import SourceBuffer


class Compiler:
    """Compiles Ruby source, or an already parsed Ripper tree, to Go text.

    A Compiler holds only configuration; each call is an independent
    compilation with fresh blocks and writers. A CompileError aborts the
    compilation before anything reaches the output stream.
    """

    def __init__(
        self,
        config: CompilerConfig = CompilerConfig(),
        logger: logging.Logger | None = None,
        parser_factory: ParserFactory | None = None,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.logger.setLevel(constants.LOG_LEVELS[config.log_level])
        self._parser_factory = parser_factory

    def compile(
        self,
        source: str,
        stream: IO[str] | None = None,
        config: CompilerConfig | None = None,
    ) -> str:
        tree = parse_ruby(source, self._parser_factory)
        return self.generate(tree, stream=stream, config=config)

    def compile_file(self, path: str | Path, stream: IO[str] | None = None) -> str:
        path = Path(path)
        if self.config.unit_name == constants.DEFAULT_UNIT_NAME:
            config = CompilerConfig.for_path(path, self.config.log_level)
        else:
            config = dataclasses.replace(self.config, script=str(path))
        self.logger.info("Compiling %s as unit %s", path, config.unit_name)
        return self.compile(path.read_text(encoding="utf-8"), stream=stream, config=config)

    def generate(
        self,
        tree,
        stream: IO[str] | None = None,
        config: CompilerConfig | None = None,
    ) -> str:
        """Generate the Go unit for a Ripper ``program`` tree and flush it once."""
        config = config or self.config
        self.logger.setLevel(constants.LOG_LEVELS[config.log_level])
        self.logger.debug("Input tree:\n%s", pprint.pformat(tree))
        toplevel = TopLevelBlock(SourceBuffer(config.script))
        visitor = StatementVisitor(toplevel)
        with visitor.writer.indent_block():
            visitor.visit_typed_node(tree, "program")

        writer = Writer(stream)
        writer.write_header(config.unit_name, config.script)
        with writer.indent_block(2):
            for s in sorted(toplevel.strings):
                writer.write(f"{constants.INTERN_PREFIX}{s} := πg.InternStr({go_str(s)})")
            writer.write_temp_decls(toplevel)
            writer.write_block(toplevel, visitor.writer.getvalue())
        writer.write_footer(config.unit_name)
        self.logger.debug(
            "Generated unit %s: %d interned strings, %d temporaries",
            config.unit_name,
            len(toplevel.strings),
            toplevel.temp_index,
        )
        return writer.flush()
