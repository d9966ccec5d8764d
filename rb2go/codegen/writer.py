"""Writer — the text sink for generated Go code.

Besides buffering and indentation, the writer owns the shape of the two
checked-call forms every failing runtime operation is emitted through:

    if πE = <call>; πE != nil {             call-for-effect
        continue
    }
    if <result>, πE = <call>; πE != nil {   call-for-value
        continue
    }

``continue`` ends the current pass of the frame's state-machine loop, whose
post statement pops the checkpoint stack; execution resumes at the nearest
enclosing checkpoint or leaves the function with ``πE`` set.
"""

from __future__ import annotations

import contextlib
import io
import logging
from typing import IO, Iterator

from .. import constants
from .block import Block
from .expr import Expr
from .util import go_str

logger = logging.getLogger(__name__)


def label_name(label: int) -> str:
    return constants.LABEL_TEMPLATE.format(label=label)


class Writer:
    """Buffers generated lines, tracking indentation in tabs."""

    def __init__(self, stream: IO[str] | None = None):
        self._out = io.StringIO()
        self._stream = stream
        self._indent_level = 0
        self._flushed = False

    def getvalue(self) -> str:
        return self._out.getvalue()

    # ── indentation ──────────────────────────────────────────────

    def indent(self, n: int = 1):
        self._indent_level += n

    def dedent(self, n: int = 1):
        self._indent_level -= n

    @contextlib.contextmanager
    def indent_block(self, n: int = 1) -> Iterator[None]:
        self.indent(n)
        try:
            yield
        finally:
            self.dedent(n)

    # ── raw output ───────────────────────────────────────────────

    def write(self, output: str):
        for line in output.split("\n"):
            if line:
                self._out.write("\t" * self._indent_level + line + "\n")

    def write_label(self, label: int):
        """Write a goto target one level out, so it lines up with the switch."""
        with self.indent_block(-1):
            self.write(label_name(label) + ":")

    def write_goto(self, label: int):
        self.write("goto " + label_name(label))

    def write_goto_if(self, cond: str, label: int):
        self.write(f"if {cond} {{\n\tgoto {label_name(label)}\n}}")

    # ── checked calls ────────────────────────────────────────────

    def write_call_for_effect(self, call: str):
        self.write(f"if πE = {call}; πE != nil {{\n\tcontinue\n}}")

    def write_call_for_value(self, result: Expr, call: str):
        self.write(f"if {result.name}, πE = {call}; πE != nil {{\n\tcontinue\n}}")

    # ── block structure ──────────────────────────────────────────

    def write_temp_decls(self, block: Block):
        for temp in sorted(block.free_temps | block.used_temps, key=lambda t: t.name):
            self.write(f"var {temp.name} {temp.type_}\n_ = {temp.name}")

    def write_block(self, block: Block, body: str):
        """Write the checkpoint state machine around *body*.

        *body* is expected to be indented one level deeper than its labels.
        """
        self.write("for ; πF.State() >= 0; πF.PopCheckpoint() {")
        with self.indent_block():
            self.write("switch πF.State() {")
            self.write("case 0:")
            for checkpoint in block.checkpoints:
                self.write(f"case {checkpoint}: goto {label_name(checkpoint)}")
            self.write('default: panic("unexpected function state")')
            self.write("}")
            with self.indent_block(-1):
                self.write(body)
        self.write("}")

    def write_header(self, unit_name: str, script: str):
        self.write(f"package {unit_name}")
        self.write(f"import πg {constants.RUNTIME_IMPORT}")
        self.write("var Code *πg.Code")
        self.write("func init() {")
        with self.indent_block():
            self.write(
                f'Code = πg.NewCode("{constants.MODULE_CODE_NAME}", {go_str(script)}, nil, 0, '
                "func(πF *πg.Frame, _ []*πg.Object) (*πg.Object, *πg.BaseException) {"
            )
            with self.indent_block():
                self.write("var πR *πg.Object; _ = πR")
                self.write("var πE *πg.BaseException; _ = πE")

    def write_footer(self, unit_name: str):
        with self.indent_block(2):
            self.write("return nil, πE")
        with self.indent_block():
            self.write("})")
            self.write(f"πg.RegisterModule({go_str(unit_name)}, Code)")
        self.write("}")

    # ── output ───────────────────────────────────────────────────

    def flush(self) -> str:
        """Emit the buffered text to the stream, once. Returns the text."""
        if self._flushed:
            raise RuntimeError("Writer has already been flushed")
        self._flushed = True
        text = self.getvalue()
        if self._stream is not None:
            self._stream.write(text)
            self._stream.flush()
        logger.debug("Flushed %d bytes of generated code", len(text))
        return text
