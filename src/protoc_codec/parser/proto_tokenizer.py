"""Tokenizer for protobuf (.proto) files.

A single verbose regular expression classifies the next lexeme; whitespace
and comments only advance the line/column position.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List


class ProtoTokenType(Enum):
    # Keywords
    SYNTAX = auto()
    PACKAGE = auto()
    IMPORT = auto()
    OPTION = auto()
    MESSAGE = auto()
    ENUM = auto()
    REQUIRED = auto()
    OPTIONAL = auto()
    REPEATED = auto()
    RESERVED = auto()
    EXTENSIONS = auto()
    EXTEND = auto()
    ONEOF = auto()
    SERVICE = auto()

    # Punctuation
    LBRACE = auto()
    RBRACE = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LPAREN = auto()
    RPAREN = auto()
    SEMICOLON = auto()
    EQUALS = auto()
    COMMA = auto()
    MINUS = auto()

    IDENT = auto()
    NUMBER = auto()
    STRING_LIT = auto()
    EOF = auto()


KEYWORDS: Dict[str, ProtoTokenType] = {
    kind.name.lower(): kind
    for kind in (
        ProtoTokenType.SYNTAX,
        ProtoTokenType.PACKAGE,
        ProtoTokenType.IMPORT,
        ProtoTokenType.OPTION,
        ProtoTokenType.MESSAGE,
        ProtoTokenType.ENUM,
        ProtoTokenType.REQUIRED,
        ProtoTokenType.OPTIONAL,
        ProtoTokenType.REPEATED,
        ProtoTokenType.RESERVED,
        ProtoTokenType.EXTENSIONS,
        ProtoTokenType.EXTEND,
        ProtoTokenType.ONEOF,
        ProtoTokenType.SERVICE,
    )
}

PUNCTUATION: Dict[str, ProtoTokenType] = dict(
    zip(
        "{}[]();=,-",
        (
            ProtoTokenType.LBRACE,
            ProtoTokenType.RBRACE,
            ProtoTokenType.LBRACKET,
            ProtoTokenType.RBRACKET,
            ProtoTokenType.LPAREN,
            ProtoTokenType.RPAREN,
            ProtoTokenType.SEMICOLON,
            ProtoTokenType.EQUALS,
            ProtoTokenType.COMMA,
            ProtoTokenType.MINUS,
        ),
    )
)

_LEXEME = re.compile(
    r"""
      (?P<skip>[ \t\r\n\f\v]+ | //[^\n]* | /\*.*?(?:\*/|\Z))
    | (?P<string>(?P<quote>["'])(?P<body>(?:\\.|(?!(?P=quote))[^\\\n])*)(?P=quote)?)
    | (?P<number>0[xX][0-9a-fA-F]+ | (?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
    | (?P<word>[A-Za-z_.][A-Za-z0-9_.]*)
    | (?P<punct>[{}\[\]();=,\-])
    | (?P<other>.)
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
    "?": "?",
}

_ESCAPE = re.compile(r"\\(?:[xX]([0-9a-fA-F]{1,2})|([0-7]{1,3})|(.))", re.DOTALL)


@dataclass
class ProtoToken:
    type: ProtoTokenType
    value: str
    line: int
    col: int


def unescape(raw: str) -> str:
    """Resolve C-style escapes inside a string literal body."""

    def _replace(match: re.Match) -> str:
        hex_digits, octal_digits, char = match.groups()
        if hex_digits:
            return chr(int(hex_digits, 16))
        if octal_digits:
            return chr(int(octal_digits, 8))
        return _ESCAPES.get(char, char)

    return _ESCAPE.sub(_replace, raw)


def tokenize_proto(text: str) -> List[ProtoToken]:
    """Tokenize a protobuf source string into a list of tokens."""
    tokens: List[ProtoToken] = []
    line = 1
    line_start = 0

    for match in _LEXEME.finditer(text):
        kind = match.lastgroup
        lexeme = match.group()
        col = match.start() - line_start + 1

        if kind == "string":
            tokens.append(ProtoToken(ProtoTokenType.STRING_LIT, unescape(match.group("body")), line, col))
        elif kind == "number":
            tokens.append(ProtoToken(ProtoTokenType.NUMBER, lexeme, line, col))
        elif kind == "word":
            tokens.append(ProtoToken(KEYWORDS.get(lexeme, ProtoTokenType.IDENT), lexeme, line, col))
        elif kind == "punct":
            tokens.append(ProtoToken(PUNCTUATION[lexeme], lexeme, line, col))
        # Whitespace, comments and stray characters produce no token

        breaks = lexeme.count("\n")
        if breaks:
            line += breaks
            line_start = match.start() + lexeme.rindex("\n") + 1

    tokens.append(ProtoToken(ProtoTokenType.EOF, "", line, len(text) - line_start + 1))
    return tokens
