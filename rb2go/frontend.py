"""RubySexpBuilder — tree-sitter Ruby AST -> Ripper-shaped tagged nodes.

The code generator consumes the node shape produced by Ruby's own
``Ripper.sexp``. This module rebuilds that shape from a tree-sitter parse so
Ruby source can be compiled without a Ruby interpreter. Only the constructs
the generator understands are mapped precisely; anything else becomes a
``[node_type, [line, column]]`` stub that the generator reports or skips.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from tree_sitter import Node, Tree

from . import constants
from .codegen.errors import CompileError

logger = logging.getLogger(__name__)

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "s": " ",
    "e": "\x1b",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
}

_UNARY_OPERATORS = {"-": "-@", "+": "+@", "!": "!", "not": "not", "~": "~"}
_CALL_OPERATORS = frozenset({".", "&.", "::"})
_BODY_CLAUSES = ("rescue", "else", "ensure")


class ParserFactory(ABC):
    """Abstract factory for obtaining a tree-sitter parser."""

    @abstractmethod
    def get_parser(self, language: str): ...


class TreeSitterParserFactory(ParserFactory):
    """Concrete factory that delegates to tree-sitter-language-pack."""

    def get_parser(self, language: str):
        import tree_sitter_language_pack as tslp

        return tslp.get_parser(language)


def decode_escape(text: str) -> str:
    """Return the character(s) a double-quoted Ruby escape sequence stands for."""
    body = text[1:]
    if body in _SIMPLE_ESCAPES:
        return _SIMPLE_ESCAPES[body]
    if body[:1] == "x":
        return chr(int(body[1:], 16))
    if body[:1] == "u":
        return "".join(chr(int(code, 16)) for code in body[1:].strip("{}").split())
    if body.isdigit():
        return chr(int(body, 8))
    return body


class RubySexpBuilder:
    """Rebuilds Ripper's sexp shape from a tree-sitter Ruby tree."""

    COMMENT_TYPES = frozenset({"comment"})

    def __init__(self):
        self._source = b""
        self._scopes: list[set[str]] = []
        self._DISPATCH: dict[str, Callable] = {
            "identifier": self._identifier,
            "constant": self._variable,
            "instance_variable": self._variable,
            "global_variable": self._variable,
            "self": self._keyword,
            "true": self._keyword,
            "false": self._keyword,
            "nil": self._keyword,
            "integer": self._int,
            "float": self._float,
            "string": self._string,
            "simple_symbol": self._simple_symbol,
            "array": self._array,
            "hash": self._hash,
            "binary": self._binary,
            "unary": self._unary,
            "conditional": self._conditional,
            "parenthesized_statements": self._paren,
            "assignment": self._assignment,
            "operator_assignment": self._operator_assignment,
            "element_reference": self._element_reference,
            "call": self._call,
            "method": self._method,
            "class": self._class,
            "if": self._if,
            "unless": self._if,
            "if_modifier": self._modifier,
            "unless_modifier": self._modifier,
            "while_modifier": self._modifier,
            "until_modifier": self._modifier,
            "while": self._while,
            "until": self._while,
            "break": self._jump,
            "next": self._jump,
            "return": self._return,
            "undef": self._undef,
            "empty_statement": self._void_stmt,
        }

    def build(self, tree: Tree, source: bytes) -> list:
        """Return the ``program`` node for *tree*, parsed from *source*."""
        self._source = source
        self._scopes = [set()]
        root = tree.root_node
        if root.has_error:
            bad = self._first_error(root) or root
            raise CompileError(
                [bad.type, self._pos(bad)], "Ruby source has a syntax error."
            )
        return ["program", self._stmts(root.named_children)]

    def _first_error(self, node: Node) -> Node | None:
        if node.type == "ERROR" or node.is_missing:
            return node
        for child in node.children:
            found = self._first_error(child)
            if found is not None:
                return found
        return None

    # ── helpers ──────────────────────────────────────────────────

    def _text(self, node: Node) -> str:
        return self._source[node.start_byte : node.end_byte].decode("utf-8")

    def _pos(self, node: Node) -> list[int]:
        row, column = node.start_point
        return [row + 1, column]

    def _token(self, tag: str, node: Node, text: str | None = None) -> list:
        return [tag, self._text(node) if text is None else text, self._pos(node)]

    def _convert(self, node: Node) -> list:
        handler = self._DISPATCH.get(node.type)
        if handler is None:
            logger.debug("No Ripper mapping for '%s' at %s", node.type, self._pos(node))
            return [node.type, self._pos(node)]
        return handler(node)

    def _stmts(self, nodes) -> list:
        stmts = [self._convert(n) for n in nodes if n.type not in self.COMMENT_TYPES]
        return stmts or [["void_stmt"]]

    def _body(self, node: Node | None) -> list:
        if node is None:
            return [["void_stmt"]]
        return self._stmts(node.named_children)

    def _bodystmt(self, node: Node | None) -> list:
        clauses: dict[str, Any] = dict.fromkeys(_BODY_CLAUSES)
        stmts = []
        for child in node.named_children if node is not None else []:
            if child.type in _BODY_CLAUSES:
                clauses[child.type] = [child.type, self._pos(child)]
            elif child.type not in self.COMMENT_TYPES:
                stmts.append(self._convert(child))
        return ["bodystmt", stmts or [["void_stmt"]], *clauses.values()]

    def _operator(self, node: Node) -> str:
        op = node.child_by_field_name("operator")
        if op is None:
            op = next(c for c in node.children if not c.is_named)
        return self._text(op)

    def _is_local(self, name: str) -> bool:
        return name in self._scopes[-1]

    def _declare(self, name: str):
        self._scopes[-1].add(name)

    # ── names and literals ───────────────────────────────────────

    def _identifier(self, node: Node) -> list:
        name = self._text(node)
        if self._is_local(name):
            return ["var_ref", self._token("@ident", node)]
        return ["vcall", self._token("@ident", node)]

    _VARIABLE_TAGS = {
        "constant": "@const",
        "instance_variable": "@ivar",
        "global_variable": "@gvar",
    }

    def _variable(self, node: Node) -> list:
        return ["var_ref", self._token(self._VARIABLE_TAGS[node.type], node)]

    def _keyword(self, node: Node) -> list:
        return ["var_ref", self._token("@kw", node)]

    def _int(self, node: Node) -> list:
        return self._token("@int", node)

    def _float(self, node: Node) -> list:
        return self._token("@float", node)

    def _string(self, node: Node) -> list:
        single_quoted = self._text(node).startswith("'")
        parts = []
        for child in node.named_children:
            if child.type == "string_content":
                parts.append(self._token("@tstring_content", child))
            elif child.type == "escape_sequence":
                text = self._text(child)
                if not single_quoted:
                    text = decode_escape(text)
                elif text in ("\\\\", "\\'"):
                    text = text[1]
                parts.append(self._token("@tstring_content", child, text))
            elif child.type == "interpolation":
                parts.append(["string_embexpr", self._stmts(child.named_children)])
            else:
                parts.append(self._convert(child))
        return ["string_literal", ["string_content", *parts]]

    # e.g. :foo -> ["symbol_literal", ["symbol", ["@ident", "foo", [1, 1]]]]
    def _simple_symbol(self, node: Node) -> list:
        row, column = node.start_point
        name = self._text(node).removeprefix(":")
        return ["symbol_literal", ["symbol", ["@ident", name, [row + 1, column + 1]]]]

    def _array(self, node: Node) -> list:
        elements = [
            self._convert(c) for c in node.named_children if c.type not in self.COMMENT_TYPES
        ]
        return ["array", elements or None]

    def _hash(self, node: Node) -> list:
        pairs = []
        for child in node.named_children:
            if child.type == "pair":
                pairs.append(self._pair(child))
            elif child.type not in self.COMMENT_TYPES:
                pairs.append(self._convert(child))
        if not pairs:
            return ["hash", None]
        return ["hash", ["assoclist_from_args", pairs]]

    def _pair(self, node: Node) -> list:
        key = node.child_by_field_name("key")
        value = node.child_by_field_name("value")
        if key.type == "hash_key_symbol":
            key_node = self._token("@label", key, self._text(key) + ":")
        else:
            key_node = self._convert(key)
        return ["assoc_new", key_node, self._convert(value)]

    # ── operators ────────────────────────────────────────────────

    def _binary(self, node: Node) -> list:
        return [
            "binary",
            self._convert(node.child_by_field_name("left")),
            self._operator(node),
            self._convert(node.child_by_field_name("right")),
        ]

    def _unary(self, node: Node) -> list:
        op = self._operator(node)
        operand = node.child_by_field_name("operand")
        if op == "-" and operand.type in ("integer", "float"):
            tag = "@int" if operand.type == "integer" else "@float"
            return [tag, "-" + self._text(operand), self._pos(node)]
        if op not in _UNARY_OPERATORS:
            return [node.type, self._pos(node)]
        return ["unary", _UNARY_OPERATORS[op], self._convert(operand)]

    def _conditional(self, node: Node) -> list:
        return [
            "ifop",
            self._convert(node.child_by_field_name("condition")),
            self._convert(node.child_by_field_name("consequence")),
            self._convert(node.child_by_field_name("alternative")),
        ]

    def _paren(self, node: Node) -> list:
        return ["paren", self._stmts(node.named_children)]

    # ── assignment ───────────────────────────────────────────────

    def _assignment(self, node: Node) -> list:
        target = self._target(node.child_by_field_name("left"))
        return ["assign", target, self._convert(node.child_by_field_name("right"))]

    def _operator_assignment(self, node: Node) -> list:
        left = node.child_by_field_name("left")
        op_node = node.child_by_field_name("operator")
        if op_node is None:
            op_node = next(c for c in node.children if not c.is_named)
        target = self._target(left)
        return [
            "opassign",
            target,
            self._token("@op", op_node),
            self._convert(node.child_by_field_name("right")),
        ]

    def _target(self, node: Node) -> list:
        if node.type == "identifier":
            self._declare(self._text(node))
            return ["var_field", self._token("@ident", node)]
        if node.type in self._VARIABLE_TAGS:
            return ["var_field", self._token(self._VARIABLE_TAGS[node.type], node)]
        if node.type == "element_reference":
            obj, index = self._element_parts(node)
            return ["aref_field", obj, index]
        if node.type == "call" and node.child_by_field_name("arguments") is None:
            method = node.child_by_field_name("method")
            return [
                "field",
                self._convert(node.child_by_field_name("receiver")),
                self._call_operator(node),
                self._token("@ident", method),
            ]
        return [node.type, self._pos(node)]

    def _element_reference(self, node: Node) -> list:
        obj, index = self._element_parts(node)
        return ["aref", obj, index]

    def _element_parts(self, node: Node) -> tuple[list, list]:
        obj_node = node.child_by_field_name("object")
        indices = [
            self._convert(c)
            for c in node.named_children
            if c != obj_node and c.type not in self.COMMENT_TYPES
        ]
        return self._convert(obj_node), ["args_add_block", indices, False]

    # ── calls ────────────────────────────────────────────────────

    def _call(self, node: Node) -> list:
        if node.child_by_field_name("block") is not None:
            return ["method_add_block", self._pos(node)]
        receiver = node.child_by_field_name("receiver")
        method = node.child_by_field_name("method")
        arguments = node.child_by_field_name("arguments")
        method_tok = None
        if method is not None:
            tag = "@const" if method.type == "constant" else "@ident"
            method_tok = self._token(tag, method)

        if receiver is None:
            if arguments is None:
                return ["vcall", method_tok]
            if self._is_parenthesized(arguments):
                return ["method_add_arg", ["fcall", method_tok], self._arg_paren(arguments)]
            return ["command", method_tok, self._args_add_block(arguments)]

        recv = self._convert(receiver)
        operator = self._call_operator(node)
        call = ["call", recv, operator, method_tok if method_tok is not None else "call"]
        if arguments is None:
            return call
        if self._is_parenthesized(arguments):
            return ["method_add_arg", call, self._arg_paren(arguments)]
        return ["command_call", recv, operator, method_tok, self._args_add_block(arguments)]

    def _call_operator(self, node: Node) -> str:
        for child in node.children:
            if child.type in _CALL_OPERATORS:
                return child.type
        return "."

    def _is_parenthesized(self, arguments: Node) -> bool:
        return bool(arguments.children) and arguments.children[0].type == "("

    def _arg_paren(self, arguments: Node) -> list:
        if not arguments.named_children:
            return ["arg_paren", None]
        return ["arg_paren", self._args_add_block(arguments)]

    def _args_add_block(self, arguments: Node) -> list:
        args = []
        block_arg: Any = False
        for child in arguments.named_children:
            if child.type == "block_argument":
                block_arg = ["blockarg", self._pos(child)]
            elif child.type not in self.COMMENT_TYPES:
                args.append(self._convert(child))
        return ["args_add_block", args, block_arg]

    # ── definitions ──────────────────────────────────────────────

    def _method(self, node: Node) -> list:
        name_node = node.child_by_field_name("name")
        params_node = node.child_by_field_name("parameters")
        self._scopes.append(set())
        try:
            params = self._params(params_node)
            body = self._bodystmt(node.child_by_field_name("body"))
        finally:
            self._scopes.pop()
        tag = "@const" if name_node.type == "constant" else "@ident"
        return ["def", self._token(tag, name_node), params, body]

    # e.g. (a, b = 1) -> ["paren", ["params", [a], [[b, 1]], nil, nil, nil, nil, nil]]
    def _params(self, node: Node | None) -> list:
        required, optional, keywords = [], [], []
        rest = kwrest = block = None
        for child in node.named_children if node is not None else []:
            name_node = child.child_by_field_name("name")
            if name_node is None:
                name_node = child
            if child.type == "identifier":
                required.append(self._token("@ident", child))
            elif child.type == "optional_parameter":
                value = self._convert(child.child_by_field_name("value"))
                optional.append([self._token("@ident", name_node), value])
            elif child.type == "splat_parameter":
                rest = ["rest_param", self._token("@ident", name_node)]
            elif child.type == "hash_splat_parameter":
                kwrest = ["kwrest_param", self._token("@ident", name_node)]
            elif child.type == "block_parameter":
                block = ["blockarg", self._token("@ident", name_node)]
            elif child.type == "keyword_parameter":
                keywords.append([self._token("@label", name_node, self._text(name_node) + ":"), None])
            else:
                continue
            self._declare(self._text(name_node))
        params = [
            "params",
            required or None,
            optional or None,
            rest,
            None,
            keywords or None,
            kwrest,
            block,
        ]
        if node is not None and self._text(node).startswith("("):
            return ["paren", params]
        return params

    def _class(self, node: Node) -> list:
        name_node = node.child_by_field_name("name")
        superclass = node.child_by_field_name("superclass")
        if name_node.type == "constant":
            name = ["const_ref", self._token("@const", name_node)]
        else:
            name = [name_node.type, self._pos(name_node)]
        base = None
        if superclass is not None:
            base = self._convert(superclass.named_children[0])
        self._scopes.append(set())
        try:
            body = self._bodystmt(node.child_by_field_name("body"))
        finally:
            self._scopes.pop()
        return ["class", name, base, body]

    # ── control flow ─────────────────────────────────────────────

    def _if(self, node: Node) -> list:
        return [
            node.type,
            self._convert(node.child_by_field_name("condition")),
            self._body(node.child_by_field_name("consequence")),
            self._alternative(node.child_by_field_name("alternative")),
        ]

    def _alternative(self, node: Node | None) -> list | None:
        if node is None:
            return None
        if node.type == "elsif":
            return [
                "elsif",
                self._convert(node.child_by_field_name("condition")),
                self._body(node.child_by_field_name("consequence")),
                self._alternative(node.child_by_field_name("alternative")),
            ]
        return ["else", self._body(node)]

    _MODIFIER_TAGS = {
        "if_modifier": "if_mod",
        "unless_modifier": "unless_mod",
        "while_modifier": "while_mod",
        "until_modifier": "until_mod",
    }

    def _modifier(self, node: Node) -> list:
        body = self._convert(node.child_by_field_name("body"))
        cond = self._convert(node.child_by_field_name("condition"))
        return [self._MODIFIER_TAGS[node.type], cond, body]

    def _while(self, node: Node) -> list:
        return [
            node.type,
            self._convert(node.child_by_field_name("condition")),
            self._body(node.child_by_field_name("body")),
        ]

    def _jump_args(self, node: Node) -> list | None:
        arguments = next(
            (c for c in node.named_children if c.type == "argument_list"), None
        )
        if arguments is None:
            return None
        return self._args_add_block(arguments)

    def _jump(self, node: Node) -> list:
        return [node.type, self._jump_args(node) or []]

    def _return(self, node: Node) -> list:
        args = self._jump_args(node)
        if args is None:
            return ["return0"]
        return ["return", args]

    def _undef(self, node: Node) -> list:
        symbols = []
        for child in node.named_children:
            row, column = child.start_point
            if child.type == "simple_symbol":
                name, column = self._text(child).removeprefix(":"), column + 1
            else:
                name = self._text(child)
            symbols.append(["symbol_literal", ["@ident", name, [row + 1, column]]])
        return ["undef", symbols]

    def _void_stmt(self, node: Node) -> list:
        return ["void_stmt"]


def parse_ruby(source: str, parser_factory: ParserFactory | None = None) -> list:
    """Parse Ruby *source* into a Ripper-shaped ``program`` node."""
    factory = parser_factory or TreeSitterParserFactory()
    parser = factory.get_parser(constants.SOURCE_LANGUAGE)
    source_bytes = source.encode("utf-8")
    tree = parser.parse(source_bytes)
    logger.debug(
        "Parsed %d bytes of %s source", len(source_bytes), constants.SOURCE_LANGUAGE
    )
    return RubySexpBuilder().build(tree, source_bytes)
