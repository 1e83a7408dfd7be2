"""Recursive descent parser for protobuf (.proto) files.

Turns the token list from proto_tokenizer into proto_ast nodes. Statements
the generator has no use for (services, extensions, reserved ranges, oneofs)
are consumed and dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Tuple

from protoc_codec.errors import SchemaError

from .proto_ast import ProtoEnum, ProtoField, ProtoFile, ProtoMessage
from .proto_tokenizer import KEYWORDS, ProtoToken, ProtoTokenType

_LOG = logging.getLogger(__name__)

T = ProtoTokenType

_LABELS = {
    T.REQUIRED: "required",
    T.OPTIONAL: "optional",
    T.REPEATED: "repeated",
}

# Keywords are valid field, enum value and option names.
_NAME_TOKENS = {T.IDENT, *KEYWORDS.values()}


class ProtoParseError(SchemaError):
    """Raised when the parser encounters unexpected input."""

    def __init__(self, message: str, token: ProtoToken | None = None):
        if token is not None:
            message = f"Line {token.line}:{token.col}: {message}"
        super().__init__(message)


class ProtoParser:
    """Recursive descent parser for .proto files."""

    def __init__(self, tokens: List[ProtoToken]):
        self._tokens = tokens
        self._pos = 0

    def parse(self) -> ProtoFile:
        """Parse the full token stream into a ProtoFile AST."""
        proto = ProtoFile()
        statements: Dict[ProtoTokenType, Callable[[ProtoFile], None]] = {
            T.SYNTAX: self._syntax,
            T.PACKAGE: self._package,
            T.IMPORT: self._import,
            T.OPTION: lambda p: self._option_into(p.options),
            T.MESSAGE: lambda p: p.messages.append(self._parse_message()),
            T.ENUM: lambda p: p.enums.append(self._parse_enum()),
            T.SERVICE: lambda p: self._skip_block(),
            T.EXTEND: lambda p: self._skip_block(),
            T.SEMICOLON: lambda p: self._advance(),
        }
        while self._current.type is not T.EOF:
            handler = statements.get(self._current.type)
            if handler is None:
                raise self._unexpected()
            handler(proto)
        return proto

    # -- file level statements --

    def _syntax(self, proto: ProtoFile) -> None:
        self._advance()
        self._expect(T.EQUALS)
        proto.syntax = self._expect(T.STRING_LIT).value
        self._expect(T.SEMICOLON)

    def _package(self, proto: ProtoFile) -> None:
        self._advance()
        proto.package = self._expect(T.IDENT).value
        self._expect(T.SEMICOLON)

    def _import(self, proto: ProtoFile) -> None:
        self._advance()
        if self._current.type is T.IDENT and self._current.value in ("public", "weak"):
            self._advance()
        proto.imports.append(self._expect(T.STRING_LIT).value)
        self._expect(T.SEMICOLON)

    # -- messages --

    def _parse_message(self) -> ProtoMessage:
        """message NAME { body }"""
        self._expect(T.MESSAGE)
        message = ProtoMessage(name=self._expect(T.IDENT).value)
        self._expect(T.LBRACE)
        while not self._accept(T.RBRACE):
            self._message_member(message)
        return message

    def _message_member(self, message: ProtoMessage) -> None:
        kind = self._current.type
        if kind is T.MESSAGE:
            message.nested_messages.append(self._parse_message())
        elif kind is T.ENUM:
            message.nested_enums.append(self._parse_enum())
        elif kind in _LABELS:
            label = _LABELS[self._advance().type]
            message.fields.append(self._parse_field(label))
        elif kind is T.IDENT:
            message.fields.append(self._parse_field(""))
        elif kind is T.OPTION:
            self._option_into(message.options)
        elif kind in (T.RESERVED, T.EXTENSIONS):
            self._skip_statement()
        elif kind in (T.ONEOF, T.EXTEND):
            _LOG.warning(
                "Line %d: %s blocks are not supported, skipping",
                self._current.line,
                self._current.value,
            )
            self._skip_block()
        elif kind is T.SEMICOLON:
            self._advance()
        else:
            raise self._unexpected(f" in message '{message.name}'")

    def _parse_field(self, label: str) -> ProtoField:
        """TYPE NAME = NUMBER [options] ;"""
        type_tok = self._expect(T.IDENT)
        name = self._expect_name().value
        self._expect(T.EQUALS)
        number = self._to_int(self._expect(T.NUMBER))
        options = self._option_list() if self._current.type is T.LBRACKET else {}
        self._expect(T.SEMICOLON)
        return ProtoField(
            type_name=type_tok.value,
            field_name=name,
            field_number=number,
            label=label,
            options=options,
            line=type_tok.line,
        )

    # -- enums --

    def _parse_enum(self) -> ProtoEnum:
        """enum NAME { (NAME = [-]NUMBER [options] ;)* }"""
        self._expect(T.ENUM)
        enum = ProtoEnum(name=self._expect(T.IDENT).value)
        self._expect(T.LBRACE)
        while not self._accept(T.RBRACE):
            kind = self._current.type
            if kind is T.OPTION:
                self._option_into(enum.options)
            elif kind is T.RESERVED:
                self._skip_statement()
            elif kind is T.SEMICOLON:
                self._advance()
            else:
                member = self._expect_name().value
                self._expect(T.EQUALS)
                sign = -1 if self._accept(T.MINUS) else 1
                enum.values[member] = sign * self._to_int(self._expect(T.NUMBER))
                if self._current.type is T.LBRACKET:
                    self._option_list()
                self._expect(T.SEMICOLON)
        return enum

    # -- options --

    def _option_into(self, options: Dict[str, Any]) -> None:
        """option NAME = CONSTANT ;"""
        self._expect(T.OPTION)
        name = self._option_name()
        self._expect(T.EQUALS)
        options[name] = self._constant()
        self._expect(T.SEMICOLON)

    def _option_list(self) -> Dict[str, Any]:
        """[ NAME = CONSTANT (, NAME = CONSTANT)* ]"""
        self._expect(T.LBRACKET)
        options: Dict[str, Any] = {}
        while True:
            name = self._option_name()
            self._expect(T.EQUALS)
            options[name] = self._constant()
            if not self._accept(T.COMMA):
                break
        self._expect(T.RBRACKET)
        return options

    def _option_name(self) -> str:
        # Plain names, or extension names such as (my.ext).field
        if not self._accept(T.LPAREN):
            return self._expect_name().value
        name = f"({self._expect(T.IDENT).value})"
        self._expect(T.RPAREN)
        if self._current.type is T.IDENT and self._current.value.startswith("."):
            name += self._advance().value
        return name

    def _constant(self) -> Any:
        """A string, signed number, true/false or bare identifier."""
        negative = self._accept(T.MINUS)
        tok = self._advance()
        if tok.type is T.STRING_LIT and not negative:
            return tok.value
        if tok.type is T.NUMBER:
            number = self._to_number(tok)
            return -number if negative else number
        if tok.type in _NAME_TOKENS:
            if tok.value in ("inf", "nan"):
                number = float(tok.value)
                return -number if negative else number
            if negative:
                raise ProtoParseError(f"Cannot negate {tok.value!r}", tok)
            return {"true": True, "false": False}.get(tok.value, tok.value)
        raise ProtoParseError(f"Expected constant, got {tok.type.name} ({tok.value!r})", tok)

    # -- skipping --

    def _skip_statement(self) -> None:
        """Drop tokens through the next semicolon."""
        while self._current.type is not T.EOF:
            if self._advance().type is T.SEMICOLON:
                break

    def _skip_block(self) -> None:
        """Drop a keyword, its header and its balanced { ... } body."""
        depth = 0
        while self._current.type is not T.EOF:
            kind = self._advance().type
            if kind is T.LBRACE:
                depth += 1
            elif kind is T.RBRACE:
                depth -= 1
                if depth == 0:
                    break

    # -- token cursor --

    @property
    def _current(self) -> ProtoToken:
        return self._tokens[self._pos]

    def _advance(self) -> ProtoToken:
        tok = self._current
        if tok.type is not T.EOF:
            self._pos += 1
        return tok

    def _accept(self, kind: ProtoTokenType) -> bool:
        if self._current.type is kind:
            self._advance()
            return True
        return False

    def _expect(self, kind: ProtoTokenType) -> ProtoToken:
        if self._current.type is not kind:
            tok = self._current
            raise ProtoParseError(f"Expected {kind.name}, got {tok.type.name} ({tok.value!r})", tok)
        return self._advance()

    def _expect_name(self) -> ProtoToken:
        if self._current.type not in _NAME_TOKENS:
            tok = self._current
            raise ProtoParseError(f"Expected name, got {tok.type.name} ({tok.value!r})", tok)
        return self._advance()

    def _unexpected(self, where: str = "") -> ProtoParseError:
        tok = self._current
        return ProtoParseError(f"Unexpected {tok.type.name} ({tok.value!r}){where}", tok)

    @staticmethod
    def _to_int(tok: ProtoToken) -> int:
        try:
            return int(tok.value, 0)
        except ValueError:
            pass
        # Leading-zero octal, as in 017
        try:
            return int(tok.value, 8)
        except ValueError:
            raise ProtoParseError(f"Invalid integer {tok.value!r}", tok) from None

    @classmethod
    def _to_number(cls, tok: ProtoToken) -> int | float:
        text = tok.value.lower()
        if text.startswith("0x") or not any(c in text for c in ".e"):
            return cls._to_int(tok)
        try:
            return float(tok.value)
        except ValueError:
            raise ProtoParseError(f"Invalid number {tok.value!r}", tok) from None
