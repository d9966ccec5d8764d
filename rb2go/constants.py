"""Named constants for generated Go names and compiler defaults."""

from __future__ import annotations

import logging

SOURCE_LANGUAGE = "ruby"

RUNTIME_IMPORT = '"grumpy"'

OBJECT_TYPE = "*πg.Object"
BOOL_TYPE = "bool"
DICT_TYPE = "*πg.Dict"
OBJECT_SLICE_TYPE = "[]*πg.Object"
PARAM_SLICE_TYPE = "[]πg.Param"

TEMP_NAME_TEMPLATE = "πTemp{index:03d}"
LABEL_TEMPLATE = "Label{label}"
LOCAL_PREFIX = "µ"
INTERN_PREFIX = "ß"
INTERN_MAX_LENGTH = 64
NON_WORD_PATTERN = r"[^A-Za-z0-9_]"

UNBOUND_LOCAL = "πg.UnboundLocal"
ARG_SLOT_TEMPLATE = "πArgs[{index}]"

MODULE_CODE_NAME = "<main>"
DEFAULT_UNIT_NAME = "__main__"
DEFAULT_SCRIPT = "<string>"

RECEIVER_NAME = "self"
CONSTRUCTOR_SUGAR = "new"
INITIALIZE_METHOD = "initialize"
INIT_ATTRIBUTE = "__init__"

GLOBAL_DECL_TAG = "global"

LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
}
DEFAULT_LOG_LEVEL = "info"
