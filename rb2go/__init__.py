"""Ruby-to-Go compiler package."""

from .api import (  # noqa: F401
    compile_file,
    compile_sexp,
    compile_source,
    dump_sexp,
    load_sexp,
    parse_source,
)
from .codegen.errors import CompileError  # noqa: F401
from .compiler import Compiler  # noqa: F401
