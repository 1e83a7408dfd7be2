"""Qualified names for messages, enums and field types."""

from __future__ import annotations

import keyword
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from protoc_codec.errors import GeneratorError
from protoc_codec.models import EnumDef, FieldDef, MessageDef, Node, ProtoType, Schema

# ProtoType -> Python type used in generated annotations
PYTHON_SCALARS: Dict[ProtoType, str] = {
    ProtoType.DOUBLE: "float",
    ProtoType.FLOAT: "float",
    ProtoType.INT32: "int",
    ProtoType.INT64: "int",
    ProtoType.UINT32: "int",
    ProtoType.UINT64: "int",
    ProtoType.SINT32: "int",
    ProtoType.SINT64: "int",
    ProtoType.FIXED32: "int",
    ProtoType.FIXED64: "int",
    ProtoType.SFIXED32: "int",
    ProtoType.SFIXED64: "int",
    ProtoType.BOOL: "bool",
    ProtoType.STRING: "str",
    ProtoType.BYTES: "bytes",
}

# Members every generated message class defines itself.
GENERATED_MEMBERS = frozenset({
    "deserialize",
    "deserialize_from",
    "serialize",
    "serialize_to",
    "hooks",
})

# Module-level names that generated class bodies refer to.
MODULE_ALIASES = frozenset({"_dataclass", "_enum", "_field", "_io", "_rt", "float"})

# Module-level names defined by the generated module itself.
MODULE_NAMES = MODULE_ALIASES | {
    "BinaryIO",
    "Dict",
    "List",
    "Optional",
    "MESSAGE_TYPES",
    "ENUM_TYPES",
}


def python_identifier(name: str, reserved: Iterable[str] = ()) -> str:
    """name, with a trailing underscore when it is a keyword or reserved."""
    if keyword.iskeyword(name) or name in reserved:
        return name + "_"
    return name


def python_identifiers(
    names: Sequence[str],
    reserved: Iterable[str] = (),
    what: str = "name",
) -> List[str]:
    """Distinct Python identifiers for names declared in one scope.

    Names that are usable as they are keep their spelling. The others get
    underscores appended until they clash with nothing else in the scope.
    """
    reserved = frozenset(reserved)
    usable = [python_identifier(n, reserved) == n for n in names]
    taken = set(reserved)
    for name, ok in zip(names, usable):
        if not ok:
            continue
        if name in taken:
            raise GeneratorError(f"duplicate {what}: '{name}'")
        taken.add(name)

    result: List[str] = []
    for name, ok in zip(names, usable):
        if ok:
            result.append(name)
            continue
        candidate = name + "_"
        while candidate in taken:
            candidate += "_"
        taken.add(candidate)
        result.append(candidate)
    return result


class TypeResolver:
    """Computes names for nodes of one schema.

    Every name is derived from the chain of the node being named, never from
    the node that refers to it, so a reference into another branch of the
    tree does not pick up the referrer's namespace.
    """

    def __init__(self, schema: Schema):
        self._schema = schema
        # (is_enum, index) -> class name, filled one sibling group at a time
        self._class_names: Dict[Tuple[bool, int], str] = {}
        self._member_names: Dict[int, Dict[str, str]] = {}

    def full_name(self, node: Node) -> str:
        """Fully-qualified name of a message or enum.

        Walks toward the root collecting one segment per node and stops at the
        nearest node (the node itself included) that declares a namespace
        override. Without an override the schema namespace is the prefix.
        """
        segments: List[str] = []
        current = node
        while current is not None:
            segments.append(current.name)
            if isinstance(current, MessageDef) and current.namespace:
                return _join(current.namespace, reversed(segments))
            current = self._schema.parent_of(current)
        return _join(self._schema.namespace, reversed(segments))

    def class_name(self, node: Node) -> str:
        """Name of the generated class for node within its enclosing scope."""
        key = (isinstance(node, EnumDef), node.index)
        if key not in self._class_names:
            self._name_siblings(node.parent)
        return self._class_names[key]

    def _name_siblings(self, parent: Optional[int]) -> None:
        schema = self._schema
        if parent is None:
            enums, messages = schema.top_enums, schema.top_messages
            reserved, what = MODULE_NAMES, "module-level class"
        else:
            owner = schema.message(parent)
            enums, messages = owner.enums, owner.messages
            reserved = GENERATED_MEMBERS | MODULE_ALIASES
            what = f"nested type in '{self.full_name(owner)}'"
        keys = [(True, i) for i in enums] + [(False, i) for i in messages]
        nodes = [schema.enum(i) for i in enums] + [schema.message(i) for i in messages]
        names = python_identifiers([n.name for n in nodes], reserved, what)
        self._class_names.update(zip(keys, names))

    def member_names(self, enum_def: EnumDef) -> Dict[str, str]:
        """Enum member name -> Python attribute of the generated IntEnum."""
        if enum_def.index not in self._member_names:
            members = list(enum_def.values)
            names = python_identifiers(members, what=f"member in '{self.full_name(enum_def)}'")
            self._member_names[enum_def.index] = dict(zip(members, names))
        return self._member_names[enum_def.index]

    def python_path(self, node: Node) -> str:
        """Dotted path of the generated class inside the generated module."""
        segments: List[str] = []
        current = node
        while current is not None:
            segments.append(self.class_name(current))
            current = self._schema.parent_of(current)
        return ".".join(reversed(segments))

    def item_type(self, field_def: FieldDef, qualified: bool = False) -> str:
        """Type of one value of the field."""
        if field_def.proto_type in (ProtoType.ENUM, ProtoType.MESSAGE):
            target = self._schema.field_target(field_def)
            return self.full_name(target) if qualified else self.python_path(target)
        return PYTHON_SCALARS[field_def.proto_type]

    def field_type(self, field_def: FieldDef, qualified: bool = False) -> str:
        """Type of the stored field; repeated fields are wrapped in List[...]."""
        item = self.item_type(field_def, qualified)
        if field_def.is_repeated:
            return f"List[{item}]"
        return item


def _join(namespace: str, segments) -> str:
    path = ".".join(segments)
    if namespace:
        return f"{namespace}.{path}"
    return path
