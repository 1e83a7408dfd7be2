"""Resolved schema model consumed by the generator.

Messages and enums live in two flat lists owned by ``Schema``. Every link
between nodes (parent, nested children, field type targets) is an index into
those lists, so recursive and mutually recursive message types need no
special handling.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from protoc_codec.runtime import WireType


class ProtoType(enum.Enum):
    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"
    ENUM = "enum"
    MESSAGE = "message"


class Rule(enum.Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    REPEATED = "repeated"


# Proto scalar type keyword -> ProtoType. ENUM and MESSAGE come from type names.
SCALAR_TYPES: Dict[str, ProtoType] = {
    t.value: t for t in ProtoType if t not in (ProtoType.ENUM, ProtoType.MESSAGE)
}

_WIRE_TYPES: Dict[ProtoType, WireType] = {
    ProtoType.DOUBLE: WireType.FIXED64,
    ProtoType.FLOAT: WireType.FIXED32,
    ProtoType.INT32: WireType.VARINT,
    ProtoType.INT64: WireType.VARINT,
    ProtoType.UINT32: WireType.VARINT,
    ProtoType.UINT64: WireType.VARINT,
    ProtoType.SINT32: WireType.VARINT,
    ProtoType.SINT64: WireType.VARINT,
    ProtoType.FIXED32: WireType.FIXED32,
    ProtoType.FIXED64: WireType.FIXED64,
    ProtoType.SFIXED32: WireType.FIXED32,
    ProtoType.SFIXED64: WireType.FIXED64,
    ProtoType.BOOL: WireType.VARINT,
    ProtoType.STRING: WireType.LENGTH_DELIMITED,
    ProtoType.BYTES: WireType.LENGTH_DELIMITED,
    ProtoType.ENUM: WireType.VARINT,
    ProtoType.MESSAGE: WireType.LENGTH_DELIMITED,
}

PACKABLE_TYPES = frozenset(
    t for t, w in _WIRE_TYPES.items() if w != WireType.LENGTH_DELIMITED
)


def wire_type_for(proto_type: ProtoType) -> WireType:
    """Wire type used for a single value of proto_type."""
    return _WIRE_TYPES[proto_type]


DefaultValue = Union[int, float, bool, str, bytes]


@dataclass
class FieldDef:
    name: str
    tag: int
    proto_type: ProtoType
    rule: Rule = Rule.OPTIONAL
    packed: bool = False
    default: Optional[DefaultValue] = None
    # Index into Schema.enums or Schema.messages for ENUM / MESSAGE fields.
    type_index: Optional[int] = None

    @property
    def wire_type(self) -> WireType:
        return wire_type_for(self.proto_type)

    @property
    def is_repeated(self) -> bool:
        return self.rule is Rule.REPEATED

    @property
    def is_packed(self) -> bool:
        return self.packed and self.is_repeated and self.proto_type in PACKABLE_TYPES


@dataclass
class EnumDef:
    name: str
    values: Dict[str, int] = field(default_factory=dict)
    parent: Optional[int] = None
    index: int = -1

    @property
    def default_member(self) -> Optional[str]:
        """The first declared member, which is the implicit default."""
        return next(iter(self.values), None)


@dataclass
class MessageDef:
    name: str
    fields: List[FieldDef] = field(default_factory=list)
    messages: List[int] = field(default_factory=list)
    enums: List[int] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    parent: Optional[int] = None
    index: int = -1

    @property
    def namespace(self) -> Optional[str]:
        return self.options.get("namespace")

    @property
    def hooks_enabled(self) -> bool:
        value = self.options.get("triggers")
        if value is None or value is False:
            return False
        return str(value).lower() not in ("off", "false")


Node = Union[MessageDef, EnumDef]


@dataclass
class Schema:
    """A whole compilation unit: root-level types plus every nested type."""

    namespace: str = ""
    options: Dict[str, Any] = field(default_factory=dict)
    messages: List[MessageDef] = field(default_factory=list)
    enums: List[EnumDef] = field(default_factory=list)
    top_messages: List[int] = field(default_factory=list)
    top_enums: List[int] = field(default_factory=list)
    source_file: str = ""

    # -- building --

    def add_message(
        self,
        name: str,
        parent: Optional[int] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> int:
        index = len(self.messages)
        self.messages.append(
            MessageDef(name=name, options=dict(options or {}), parent=parent, index=index)
        )
        if parent is None:
            self.top_messages.append(index)
        else:
            self.messages[parent].messages.append(index)
        return index

    def add_enum(
        self,
        name: str,
        values: Dict[str, int],
        parent: Optional[int] = None,
    ) -> int:
        index = len(self.enums)
        self.enums.append(EnumDef(name=name, values=dict(values), parent=parent, index=index))
        if parent is None:
            self.top_enums.append(index)
        else:
            self.messages[parent].enums.append(index)
        return index

    def add_field(self, message: int, field_def: FieldDef) -> FieldDef:
        self.messages[message].fields.append(field_def)
        return field_def

    # -- lookup --

    def message(self, index: int) -> MessageDef:
        return self.messages[index]

    def enum(self, index: int) -> EnumDef:
        return self.enums[index]

    def parent_of(self, node: Node) -> Optional[MessageDef]:
        if node.parent is None:
            return None
        return self.messages[node.parent]

    def field_target(self, field_def: FieldDef) -> Node:
        """The EnumDef or MessageDef an ENUM / MESSAGE field refers to."""
        if field_def.type_index is None:
            raise KeyError(f"field '{field_def.name}' does not reference a type")
        if field_def.proto_type is ProtoType.ENUM:
            return self.enums[field_def.type_index]
        if field_def.proto_type is ProtoType.MESSAGE:
            return self.messages[field_def.type_index]
        raise KeyError(
            f"field '{field_def.name}' has scalar type {field_def.proto_type.value}"
        )
