from .proto_ast_parser import ProtoParseError
from .proto_parser import parse_proto, parse_proto_file

__all__ = ["ProtoParseError", "parse_proto", "parse_proto_file"]
