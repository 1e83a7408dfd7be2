"""Per-field encode and decode code generation.

Each ProtoType has exactly one entry in ``_CODECS`` describing how a single
value is read from and written to a stream. ``FieldCodec`` wraps that entry
with the rule-specific logic (required checks, optional presence, repeated
and packed framing) and produces the Python source lines used by the message
template.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List

from protoc_codec.errors import GeneratorError
from protoc_codec.models import (
    PACKABLE_TYPES,
    DefaultValue,
    EnumDef,
    FieldDef,
    ProtoType,
    Rule,
    Schema,
)
from protoc_codec.resolver import TypeResolver
from protoc_codec.runtime import WireType

INDENT = "    "


@dataclass(frozen=True)
class _TypeCodec:
    # Expression reading one value; placeholders {stream} and {type}.
    read: str
    # Statement writing one value; placeholders {stream}, {value} and {type}.
    write: str
    # Natural zero of the stored field when nothing else initializes it.
    zero: str


_CODECS: Dict[ProtoType, _TypeCodec] = {
    ProtoType.DOUBLE: _TypeCodec(
        "_rt.DOUBLE.unpack(_rt.read_fixed64({stream}))[0]",
        "_rt.write_fixed64({stream}, _rt.pack(_rt.DOUBLE, {value}))",
        "0.0",
    ),
    ProtoType.FLOAT: _TypeCodec(
        "_rt.FLOAT.unpack(_rt.read_fixed32({stream}))[0]",
        "_rt.write_fixed32({stream}, _rt.pack(_rt.FLOAT, {value}))",
        "0.0",
    ),
    # int32/int64 are sign-extended to 64 bits, never zigzag encoded.
    ProtoType.INT32: _TypeCodec(
        "_rt.to_int32(_rt.read_varint({stream}))",
        "_rt.write_varint({stream}, _rt.INT32_RANGE.check({value}) & _rt.MASK64)",
        "0",
    ),
    ProtoType.INT64: _TypeCodec(
        "_rt.to_int64(_rt.read_varint({stream}))",
        "_rt.write_varint({stream}, _rt.INT64_RANGE.check({value}) & _rt.MASK64)",
        "0",
    ),
    ProtoType.UINT32: _TypeCodec(
        "_rt.read_varint({stream}) & _rt.MASK32",
        "_rt.write_varint({stream}, _rt.UINT32_RANGE.check({value}))",
        "0",
    ),
    ProtoType.UINT64: _TypeCodec(
        "_rt.read_varint({stream})",
        "_rt.write_varint({stream}, {value})",
        "0",
    ),
    ProtoType.SINT32: _TypeCodec(
        "_rt.zigzag_decode(_rt.read_varint({stream}) & _rt.MASK32)",
        "_rt.write_varint({stream}, _rt.zigzag_encode32(_rt.INT32_RANGE.check({value})))",
        "0",
    ),
    ProtoType.SINT64: _TypeCodec(
        "_rt.zigzag_decode(_rt.read_varint({stream}))",
        "_rt.write_varint({stream}, _rt.zigzag_encode64(_rt.INT64_RANGE.check({value})))",
        "0",
    ),
    ProtoType.FIXED32: _TypeCodec(
        "_rt.FIXED32.unpack(_rt.read_fixed32({stream}))[0]",
        "_rt.write_fixed32({stream}, _rt.pack(_rt.FIXED32, {value}))",
        "0",
    ),
    ProtoType.FIXED64: _TypeCodec(
        "_rt.FIXED64.unpack(_rt.read_fixed64({stream}))[0]",
        "_rt.write_fixed64({stream}, _rt.pack(_rt.FIXED64, {value}))",
        "0",
    ),
    ProtoType.SFIXED32: _TypeCodec(
        "_rt.SFIXED32.unpack(_rt.read_fixed32({stream}))[0]",
        "_rt.write_fixed32({stream}, _rt.pack(_rt.SFIXED32, {value}))",
        "0",
    ),
    ProtoType.SFIXED64: _TypeCodec(
        "_rt.SFIXED64.unpack(_rt.read_fixed64({stream}))[0]",
        "_rt.write_fixed64({stream}, _rt.pack(_rt.SFIXED64, {value}))",
        "0",
    ),
    ProtoType.BOOL: _TypeCodec(
        "_rt.read_varint({stream}) != 0",
        "_rt.write_varint({stream}, 1 if {value} else 0)",
        "False",
    ),
    ProtoType.STRING: _TypeCodec(
        "_rt.read_string({stream})",
        "_rt.write_string({stream}, {value})",
        "None",
    ),
    ProtoType.BYTES: _TypeCodec(
        "_rt.read_length_delimited({stream})",
        "_rt.write_length_delimited({stream}, bytes({value}))",
        "None",
    ),
    ProtoType.ENUM: _TypeCodec(
        "_rt.decode_enum({type}, _rt.to_int32(_rt.read_varint({stream})))",
        "_rt.write_varint({stream}, _rt.INT32_RANGE.check(int({value})) & _rt.MASK64)",
        "0",
    ),
    ProtoType.MESSAGE: _TypeCodec(
        "{type}.deserialize(_rt.read_length_delimited({stream}))",
        "_rt.write_length_delimited({stream}, {value}.serialize())",
        "None",
    ),
}

_missing = set(ProtoType) - set(_CODECS)
if _missing:
    raise GeneratorError(
        f"no codec for proto types: {sorted(t.value for t in _missing)}"
    )

# Types whose absence is represented by None.
_REFERENCE_TYPES = (ProtoType.STRING, ProtoType.BYTES, ProtoType.MESSAGE)


@dataclass
class DecodeBranch:
    """One arm of the decode dispatch: a condition and the lines it runs."""

    condition: str
    lines: List[str]


def _wire_name(wire_type: WireType) -> str:
    return f"_rt.WireType.{wire_type.name}"


def _indent(lines: List[str]) -> List[str]:
    return [INDENT + line for line in lines]


class FieldCodec:
    """Generates the stored field, decode arms and encode lines of one field."""

    def __init__(
        self,
        schema: Schema,
        resolver: TypeResolver,
        field_def: FieldDef,
        attribute: str,
    ):
        self.field = field_def
        self.attribute = attribute
        self._schema = schema
        self._resolver = resolver
        self._codec = _CODECS[field_def.proto_type]
        if field_def.proto_type in (ProtoType.ENUM, ProtoType.MESSAGE):
            self._type = resolver.python_path(schema.field_target(field_def))
        else:
            self._type = ""

    # -- single values --

    def read_expression(self, stream: str = "stream") -> str:
        return self._codec.read.format(stream=stream, type=self._type)

    def write_statement(self, value: str, stream: str = "stream") -> str:
        return self._codec.write.format(stream=stream, value=value, type=self._type)

    def _key(self, wire_type: WireType, stream: str = "stream") -> str:
        return f"_rt.write_key({stream}, {self.field.tag}, {_wire_name(wire_type)})"

    # -- stored field --

    def annotation(self) -> str:
        annotation = self._resolver.field_type(self.field)
        if not self.field.is_repeated and self.default_expression() == "None":
            return f"Optional[{annotation}]"
        return annotation

    def qualified_type(self) -> str:
        return self._resolver.field_type(self.field, qualified=True)

    def default_expression(self) -> str:
        """Initial value of the stored field in the generated dataclass."""
        f = self.field
        if f.is_repeated:
            return "_field(default_factory=list)"
        if f.proto_type is ProtoType.ENUM:
            if f.default is not None or f.rule is Rule.OPTIONAL:
                return f"_field(default_factory=lambda: {self._enum_default()})"
            return self._codec.zero
        if f.default is not None:
            return _literal(f.proto_type, f.default, f.name)
        if f.rule is Rule.OPTIONAL and f.proto_type is ProtoType.STRING:
            return '""'
        return self._codec.zero

    def _enum_default(self) -> str:
        enum_def = self._schema.field_target(self.field)
        if not isinstance(enum_def, EnumDef):
            raise GeneratorError(f"field '{self.field.name}' does not refer to an enum")
        member = self.field.default if self.field.default is not None else enum_def.default_member
        if member is None:
            raise GeneratorError(
                f"field '{self.field.name}' uses enum '{enum_def.name}' which has no members"
            )
        if member not in enum_def.values:
            raise GeneratorError(
                f"default '{member}' of field '{self.field.name}' "
                f"is not a member of enum '{enum_def.name}'"
            )
        return f"{self._type}.{self._resolver.member_names(enum_def)[member]}"

    # -- decode --

    def decode_branches(self) -> List[DecodeBranch]:
        f = self.field
        target = f"instance.{self.attribute}"
        tag = f"tag == {f.tag}"
        if f.is_repeated:
            single = DecodeBranch(
                f"{tag} and wire_type == {_wire_name(f.wire_type)}",
                [f"{target}.append({self.read_expression()})"],
            )
            if f.proto_type not in PACKABLE_TYPES:
                return [single]
            packed = DecodeBranch(
                f"{tag} and wire_type == {_wire_name(WireType.LENGTH_DELIMITED)}",
                [
                    "payload = _rt.read_length_delimited(stream)",
                    "block = _io.BytesIO(payload)",
                    "while block.tell() < len(payload):",
                    f"{INDENT}{target}.append({self.read_expression('block')})",
                ],
            )
            # Accept both framings; list the declared one first.
            return [packed, single] if f.is_packed else [single, packed]
        if f.proto_type is ProtoType.MESSAGE:
            # Merge into the value already present, if any.
            line = (
                f"{target} = {self._type}.deserialize("
                f"_rt.read_length_delimited(stream), {target})"
            )
        else:
            line = f"{target} = {self.read_expression()}"
        return [DecodeBranch(f"{tag} and wire_type == {_wire_name(f.wire_type)}", [line])]

    # -- encode --

    def required_check(self) -> List[str]:
        """Presence check run before anything is written."""
        f = self.field
        if f.rule is not Rule.REQUIRED or f.proto_type not in _REFERENCE_TYPES:
            return []
        return [
            f"if self.{self.attribute} is None:",
            f"{INDENT}raise _rt.RequiredFieldError({f.name!r})",
        ]

    def encode_lines(self) -> List[str]:
        f = self.field
        value = f"self.{self.attribute}"
        if f.is_repeated:
            if f.is_packed:
                return [
                    self._key(WireType.LENGTH_DELIMITED),
                    "block = _io.BytesIO()",
                    f"for item in {value}:",
                    INDENT + self.write_statement("item", "block"),
                    "_rt.write_length_delimited(stream, block.getvalue())",
                ]
            return [
                f"for item in {value}:",
                INDENT + self._key(f.wire_type),
                INDENT + self.write_statement("item"),
            ]
        body = [self._key(f.wire_type), self.write_statement(value)]
        if f.rule is Rule.OPTIONAL:
            if f.proto_type in _REFERENCE_TYPES:
                return [f"if {value} is not None:"] + _indent(body)
            if f.proto_type is ProtoType.ENUM:
                return [f"if {value} != {self._enum_default()}:"] + _indent(body)
        # Required fields and optional scalars are always written.
        return body


def _literal(proto_type: ProtoType, value: DefaultValue, field_name: str) -> str:
    """Python source for an explicit scalar default."""
    try:
        if proto_type is ProtoType.BOOL:
            if isinstance(value, str):
                return "True" if value.lower() == "true" else "False"
            return "True" if value else "False"
        if proto_type in (ProtoType.DOUBLE, ProtoType.FLOAT):
            number = float(value)
            if math.isnan(number):
                return 'float("nan")'
            if math.isinf(number):
                return 'float("inf")' if number > 0 else 'float("-inf")'
            return repr(number)
        if proto_type is ProtoType.STRING:
            return repr(str(value))
        if proto_type is ProtoType.BYTES:
            if isinstance(value, str):
                value = value.encode("utf-8")
            return repr(bytes(value))
        if proto_type is ProtoType.MESSAGE:
            raise GeneratorError(f"message field '{field_name}' cannot have a default")
        return str(int(value))
    except (TypeError, ValueError) as e:
        raise GeneratorError(
            f"invalid default {value!r} for {proto_type.value} field '{field_name}'"
        ) from e
