import pytest

from protoc_codec.errors import GeneratorError
from protoc_codec.models import FieldDef, ProtoType, Rule, Schema
from protoc_codec.resolver import TypeResolver, python_identifiers


def _three_levels(namespace: str = "Root", override: str = "X") -> Schema:
    schema = Schema(namespace=namespace)
    a = schema.add_message("A")
    b = schema.add_message("B", parent=a, options={"namespace": override} if override else None)
    schema.add_message("C", parent=b)
    return schema


class TestFullName:
    def test_root_namespace_prefix(self):
        schema = _three_levels(override="")
        resolver = TypeResolver(schema)
        assert resolver.full_name(schema.messages[0]) == "Root.A"
        assert resolver.full_name(schema.messages[2]) == "Root.A.B.C"

    def test_empty_namespace_has_no_prefix(self):
        schema = _three_levels(namespace="", override="")
        assert TypeResolver(schema).full_name(schema.messages[2]) == "A.B.C"

    def test_override_stops_the_walk(self):
        schema = _three_levels()
        resolver = TypeResolver(schema)
        assert resolver.full_name(schema.messages[2]) == "X.B.C"
        assert resolver.full_name(schema.messages[1]) == "X.B"
        # The ancestor above the override is unaffected
        assert resolver.full_name(schema.messages[0]) == "Root.A"

    def test_nearest_override_wins(self):
        schema = Schema(namespace="Root")
        a = schema.add_message("A", options={"namespace": "Far"})
        b = schema.add_message("B", parent=a, options={"namespace": "Near"})
        c = schema.add_message("C", parent=b)
        resolver = TypeResolver(schema)
        assert resolver.full_name(schema.message(c)) == "Near.B.C"
        assert resolver.full_name(schema.message(a)) == "Far.A"

    def test_enum_inherits_from_enclosing_message(self):
        schema = _three_levels()
        e = schema.add_enum("Kind", {"A": 0}, parent=2)
        assert TypeResolver(schema).full_name(schema.enum(e)) == "X.B.C.Kind"

    def test_reference_uses_target_chain(self):
        schema = Schema(namespace="Root")
        left = schema.add_message("Left", options={"namespace": "L"})
        right = schema.add_message("Right")
        leaf = schema.add_message("Leaf", parent=right)
        ref = schema.add_field(
            left, FieldDef("leaf", 1, ProtoType.MESSAGE, type_index=leaf)
        )
        resolver = TypeResolver(schema)
        assert resolver.item_type(ref, qualified=True) == "Root.Right.Leaf"
        assert resolver.item_type(ref) == "Right.Leaf"


class TestPythonPath:
    def test_follows_nesting_not_namespace(self):
        schema = _three_levels()
        assert TypeResolver(schema).python_path(schema.messages[2]) == "A.B.C"


class TestFieldType:
    def test_scalars(self):
        schema = Schema()
        resolver = TypeResolver(schema)
        assert resolver.field_type(FieldDef("a", 1, ProtoType.SINT64)) == "int"
        assert resolver.field_type(FieldDef("b", 2, ProtoType.FLOAT)) == "float"
        assert resolver.field_type(FieldDef("c", 3, ProtoType.BYTES)) == "bytes"

    def test_repeated_is_wrapped(self):
        schema = Schema(namespace="ns")
        m = schema.add_message("M")
        e = schema.add_enum("Color", {"RED": 0}, parent=m)
        f = FieldDef("colors", 1, ProtoType.ENUM, Rule.REPEATED, type_index=e)
        resolver = TypeResolver(schema)
        assert resolver.field_type(f) == "List[M.Color]"
        assert resolver.field_type(f, qualified=True) == "List[ns.M.Color]"
        assert resolver.field_type(FieldDef("n", 2, ProtoType.BOOL, Rule.REPEATED)) == "List[bool]"


class TestPythonIdentifiers:
    def test_plain_names_unchanged(self):
        assert python_identifiers(["a", "b"]) == ["a", "b"]

    def test_keywords_and_reserved_names_escaped(self):
        assert python_identifiers(["class", "hooks", "n"], {"hooks"}) == ["class_", "hooks_", "n"]

    def test_escape_skips_declared_names(self):
        assert python_identifiers(["from", "from_"]) == ["from__", "from_"]
        assert python_identifiers(["None", "None_", "None__"]) == ["None___", "None_", "None__"]

    def test_duplicates_rejected(self):
        with pytest.raises(GeneratorError, match="duplicate field: 'x'"):
            python_identifiers(["x", "y", "x"], what="field")


class TestClassName:
    def test_keywords_escaped_at_every_level(self):
        schema = Schema()
        outer = schema.add_message("global")
        inner = schema.add_message("lambda", parent=outer)
        kind = schema.add_enum("True", {"A": 0}, parent=inner)
        resolver = TypeResolver(schema)
        assert resolver.python_path(schema.enum(kind)) == "global_.lambda_.True_"
        assert resolver.full_name(schema.enum(kind)) == "global.lambda.True"

    def test_generated_names_are_avoided(self):
        schema = Schema()
        top = schema.add_message("MESSAGE_TYPES")
        nested = schema.add_message("serialize", parent=top)
        resolver = TypeResolver(schema)
        assert resolver.class_name(schema.message(top)) == "MESSAGE_TYPES_"
        assert resolver.class_name(schema.message(nested)) == "serialize_"

    def test_enum_and_message_siblings_share_a_scope(self):
        schema = Schema()
        schema.add_enum("if", {"A": 0})
        schema.add_message("if_")
        resolver = TypeResolver(schema)
        assert resolver.class_name(schema.enum(0)) == "if__"
        assert resolver.class_name(schema.message(0)) == "if_"

    def test_member_names(self):
        schema = Schema()
        e = schema.add_enum("Flags", {"None": 0, "READ": 1, "def": 2})
        names = TypeResolver(schema).member_names(schema.enum(e))
        assert names == {"None": "None_", "READ": "READ", "def": "def_"}
