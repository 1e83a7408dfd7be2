"""Transform proto AST nodes into the resolved Schema model."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from protoc_codec.errors import SchemaError
from protoc_codec.models import (
    PACKABLE_TYPES,
    SCALAR_TYPES,
    DefaultValue,
    FieldDef,
    ProtoType,
    Rule,
    Schema,
)

from .proto_ast import ProtoField, ProtoFile, ProtoMessage

_LOG = logging.getLogger(__name__)

_RULES = {
    "required": Rule.REQUIRED,
    "optional": Rule.OPTIONAL,
    "repeated": Rule.REPEATED,
    "": Rule.OPTIONAL,
}

_INT_TYPES = {
    ProtoType.INT32, ProtoType.INT64, ProtoType.UINT32, ProtoType.UINT64,
    ProtoType.SINT32, ProtoType.SINT64, ProtoType.FIXED32, ProtoType.FIXED64,
    ProtoType.SFIXED32, ProtoType.SFIXED64,
}


def transform_proto(ast: ProtoFile, source_file: str = "") -> Schema:
    """Transform a ProtoFile AST into a Schema.

    Types are registered in a first pass so that fields can refer to types
    declared later in the file, or to their own enclosing message.
    """
    namespace = ast.options.get("namespace") or ast.package or ""
    schema = Schema(namespace=str(namespace), options=dict(ast.options), source_file=source_file)
    package_scope = ast.package.split(".") if ast.package else []

    # Fully-qualified proto name -> (kind, index)
    names: Dict[str, Tuple[ProtoType, int]] = {}
    pending: List[Tuple[int, ProtoMessage, List[str]]] = []

    for enum_node in ast.enums:
        index = schema.add_enum(enum_node.name, enum_node.values)
        names[".".join(package_scope + [enum_node.name])] = (ProtoType.ENUM, index)

    for msg_node in ast.messages:
        _register_message(schema, msg_node, None, package_scope, names, pending)

    for index, msg_node, scope in pending:
        for f in msg_node.fields:
            schema.add_field(index, _transform_field(f, scope, names, ast.syntax, msg_node.name))

    _LOG.debug(
        "Built schema from %s: %d messages, %d enums",
        source_file or "<string>",
        len(schema.messages),
        len(schema.enums),
    )
    return schema


def _register_message(
    schema: Schema,
    node: ProtoMessage,
    parent: Optional[int],
    parent_scope: List[str],
    names: Dict[str, Tuple[ProtoType, int]],
    pending: List[Tuple[int, ProtoMessage, List[str]]],
) -> None:
    index = schema.add_message(node.name, parent, node.options)
    scope = parent_scope + [node.name]
    names[".".join(scope)] = (ProtoType.MESSAGE, index)
    pending.append((index, node, scope))

    for enum_node in node.nested_enums:
        enum_index = schema.add_enum(enum_node.name, enum_node.values, index)
        names[".".join(scope + [enum_node.name])] = (ProtoType.ENUM, enum_index)

    for nested in node.nested_messages:
        _register_message(schema, nested, index, scope, names, pending)


def _resolve(
    type_name: str,
    scope: List[str],
    names: Dict[str, Tuple[ProtoType, int]],
) -> Optional[Tuple[ProtoType, int]]:
    """Look a type name up from the innermost scope outward."""
    if type_name.startswith("."):
        return names.get(type_name[1:])
    for depth in range(len(scope), -1, -1):
        candidate = ".".join(scope[:depth] + [type_name])
        if candidate in names:
            return names[candidate]
    return None


def _transform_field(
    node: ProtoField,
    scope: List[str],
    names: Dict[str, Tuple[ProtoType, int]],
    syntax: str,
    message_name: str,
) -> FieldDef:
    type_index: Optional[int] = None
    if node.type_name in SCALAR_TYPES:
        proto_type = SCALAR_TYPES[node.type_name]
    else:
        resolved = _resolve(node.type_name, scope, names)
        if resolved is None:
            raise SchemaError(
                f"Line {node.line}: unknown type '{node.type_name}' "
                f"for field '{node.field_name}' in message '{message_name}'"
            )
        proto_type, type_index = resolved

    rule = _RULES[node.label]
    packed_option = node.options.get("packed")
    if packed_option is None:
        # proto3 packs repeated scalars unless told otherwise
        packed = syntax == "proto3" and rule is Rule.REPEATED and proto_type in PACKABLE_TYPES
    else:
        packed = bool(packed_option) and rule is Rule.REPEATED and proto_type in PACKABLE_TYPES

    default = None
    if "default" in node.options:
        default = _convert_default(node, proto_type, node.options["default"])

    return FieldDef(
        name=node.field_name,
        tag=node.field_number,
        proto_type=proto_type,
        rule=rule,
        packed=packed,
        default=default,
        type_index=type_index,
    )


def _convert_default(node: ProtoField, proto_type: ProtoType, value: Any) -> DefaultValue:
    """Check a default literal against the field type and normalize it."""
    bad = SchemaError(
        f"Line {node.line}: invalid default {value!r} for "
        f"{proto_type.value} field '{node.field_name}'"
    )
    if proto_type is ProtoType.BOOL:
        if not isinstance(value, bool):
            raise bad
        return value
    if proto_type in _INT_TYPES:
        if isinstance(value, bool) or not isinstance(value, int):
            raise bad
        return value
    if proto_type in (ProtoType.FLOAT, ProtoType.DOUBLE):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise bad
        return float(value)
    if proto_type is ProtoType.STRING:
        if not isinstance(value, str):
            raise bad
        return value
    if proto_type is ProtoType.BYTES:
        if not isinstance(value, str):
            raise bad
        return value.encode("utf-8")
    if proto_type is ProtoType.ENUM:
        # Enum defaults are member names
        if not isinstance(value, str) or isinstance(value, bool):
            raise bad
        return value
    raise bad
