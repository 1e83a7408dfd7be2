from __future__ import annotations

from pathlib import Path

from protoc_codec.models import Schema

from .proto_ast_parser import ProtoParser
from .proto_tokenizer import tokenize_proto
from .proto_transform import transform_proto


def parse_proto(text: str, source_file: str = "") -> Schema:
    """Parse .proto source text into a resolved Schema."""
    ast = ProtoParser(tokenize_proto(text)).parse()
    return transform_proto(ast, source_file)


def parse_proto_file(file_path: str) -> Schema:
    """Parse a .proto file into a resolved Schema."""
    text = Path(file_path).read_text(encoding="utf-8")
    return parse_proto(text, source_file=file_path)
