import dataclasses
import io
import itertools
import sys

import pytest

from protoc_codec.errors import DecodeError, EncodeError, GeneratorError, RequiredFieldError
from protoc_codec.generator import compile_schema, generate_module
from protoc_codec.models import FieldDef, ProtoType, Schema
from protoc_codec.parser import parse_proto

_module_ids = itertools.count()


def _compile(text: str):
    return compile_schema(parse_proto(text), f"_roundtrip_{next(_module_ids)}")


FLOAT32_MAX = 3.4028234663852886e38

SCALAR_VALUES = {
    "double": [0.0, -1.5, sys.float_info.max, -sys.float_info.max, sys.float_info.min],
    "float": [0.0, 1.5, -2.25, FLOAT32_MAX, -FLOAT32_MAX],
    "int32": [0, 1, -1, -(2**31), 2**31 - 1],
    "int64": [0, -1, -(2**63), 2**63 - 1],
    "uint32": [0, 1, 2**32 - 1],
    "uint64": [0, 2**64 - 1],
    "sint32": [0, -1, 1, -(2**31), 2**31 - 1],
    "sint64": [0, -1, -(2**63), 2**63 - 1],
    "fixed32": [0, 2**32 - 1],
    "fixed64": [0, 2**64 - 1],
    "sfixed32": [0, -(2**31), 2**31 - 1],
    "sfixed64": [0, -(2**63), 2**63 - 1],
    "bool": [False, True],
    "string": ["", "hello", "héllo wörld ✓"],
    "bytes": [b"", b"\x00\xff", bytes(range(256))],
}

TYPE_NAMES = list(SCALAR_VALUES) + ["Color", "Leaf"]


def _all_types_proto() -> str:
    lines = [
        'syntax = "proto2";',
        "package roundtrip;",
        "enum Color { RED = 0; GREEN = 1; BLUE = 2; }",
        "message Leaf { optional int32 value = 1; }",
    ]
    for rule in ("optional", "required", "repeated"):
        lines.append(f"message {rule.capitalize()}Fields {{")
        for tag, type_name in enumerate(TYPE_NAMES, start=1):
            lines.append(f"  {rule} {type_name} f_{type_name.lower()} = {tag};")
        lines.append("}")
    lines.append("message PackedFields {")
    for tag, type_name in enumerate(TYPE_NAMES, start=1):
        if type_name not in ("string", "bytes", "Leaf"):
            lines.append(f"  repeated {type_name} f_{type_name.lower()} = {tag} [packed = true];")
    lines.append("}")
    return "\n".join(lines)


ALL = _compile(_all_types_proto())


def _values(type_name):
    if type_name == "Color":
        return [ALL.Color.RED, ALL.Color.BLUE]
    if type_name == "Leaf":
        return [ALL.Leaf(), ALL.Leaf(value=-5)]
    return SCALAR_VALUES[type_name]


def _required_base(**overrides):
    # Required reference fields must be present for encoding to succeed.
    values = {"f_string": "", "f_bytes": b"", "f_leaf": ALL.Leaf()}
    values.update(overrides)
    return ALL.RequiredFields(**values)


class TestAllTypesRoundTrip:
    @pytest.mark.parametrize("type_name", TYPE_NAMES)
    def test_optional(self, type_name):
        attr = f"f_{type_name.lower()}"
        for value in _values(type_name):
            message = ALL.OptionalFields(**{attr: value})
            decoded = ALL.OptionalFields.deserialize(message.serialize())
            assert getattr(decoded, attr) == value
            assert decoded == message

    @pytest.mark.parametrize("type_name", TYPE_NAMES)
    def test_required(self, type_name):
        attr = f"f_{type_name.lower()}"
        for value in _values(type_name):
            message = _required_base(**{attr: value})
            decoded = ALL.RequiredFields.deserialize(message.serialize())
            assert getattr(decoded, attr) == value

    @pytest.mark.parametrize("type_name", TYPE_NAMES)
    def test_repeated(self, type_name):
        attr = f"f_{type_name.lower()}"
        values = list(_values(type_name))
        decoded = ALL.RepeatedFields.deserialize(ALL.RepeatedFields(**{attr: values}).serialize())
        assert getattr(decoded, attr) == values

    @pytest.mark.parametrize("type_name", [t for t in TYPE_NAMES if t not in ("string", "bytes", "Leaf")])
    def test_packed(self, type_name):
        attr = f"f_{type_name.lower()}"
        values = list(_values(type_name))
        decoded = ALL.PackedFields.deserialize(ALL.PackedFields(**{attr: values}).serialize())
        assert getattr(decoded, attr) == values

    def test_empty_lists_decode_as_empty(self):
        decoded = ALL.RepeatedFields.deserialize(ALL.RepeatedFields().serialize())
        assert decoded.f_string == []
        assert decoded.f_leaf == []
        packed = ALL.PackedFields.deserialize(ALL.PackedFields().serialize())
        assert packed.f_int32 == []

    def test_stream_api(self):
        message = ALL.OptionalFields(f_int32=-9, f_string="x")
        stream = io.BytesIO()
        message.serialize_to(stream)
        stream.seek(0)
        assert ALL.OptionalFields.deserialize_from(stream) == message


class TestRegistries:
    def test_registries_use_full_names(self):
        assert ALL.MESSAGE_TYPES["roundtrip.Leaf"] is ALL.Leaf
        assert ALL.ENUM_TYPES["roundtrip.Color"] is ALL.Color
        assert set(ALL.MESSAGE_TYPES) == {
            "roundtrip.Leaf",
            "roundtrip.OptionalFields",
            "roundtrip.RequiredFields",
            "roundtrip.RepeatedFields",
            "roundtrip.PackedFields",
        }


WIRE = _compile("""\
enum Color { RED = 0; GREEN = 1; BLUE = 2; }
message S32 { optional sint32 v = 1; }
message I32 { optional int32 v = 1; }
message E { optional Color c = 1; }
message Str { optional string s = 2; }
message Packed { repeated int32 v = 1 [packed = true]; }
message Unpacked { repeated int32 v = 1; }
message Pair { optional int32 a = 1; optional string b = 3; }
""")


class TestWireBytes:
    def test_sint32_zigzag(self):
        assert WIRE.S32(v=-1).serialize() == b"\x08\x01"
        assert WIRE.S32(v=1).serialize() == b"\x08\x02"

    def test_negative_int32_is_ten_byte_varint(self):
        data = WIRE.I32(v=-1).serialize()
        assert data == b"\x08" + b"\xff" * 9 + b"\x01"
        assert WIRE.I32.deserialize(data).v == -1

    def test_optional_scalar_written_at_default(self):
        assert WIRE.I32().serialize() == b"\x08\x00"

    def test_optional_enum_omitted_at_default(self):
        assert WIRE.E().serialize() == b""
        assert WIRE.E(c=WIRE.Color.BLUE).serialize() == b"\x08\x02"

    def test_optional_string(self):
        assert WIRE.Str().serialize() == b"\x12\x00"
        assert WIRE.Str(s=None).serialize() == b""

    def test_packed_layout(self):
        assert WIRE.Packed(v=[1, 2, 3]).serialize() == b"\x0a\x03\x01\x02\x03"
        assert WIRE.Packed().serialize() == b"\x0a\x00"

    def test_unpacked_layout(self):
        assert WIRE.Unpacked(v=[1, 2, 3]).serialize() == b"\x08\x01\x08\x02\x08\x03"

    def test_either_framing_decodes(self):
        packed = WIRE.Packed(v=[5, -1, 300]).serialize()
        unpacked = WIRE.Unpacked(v=[5, -1, 300]).serialize()
        assert WIRE.Unpacked.deserialize(packed).v == [5, -1, 300]
        assert WIRE.Packed.deserialize(unpacked).v == [5, -1, 300]

    def test_unknown_enum_value_kept_as_int(self):
        decoded = WIRE.E.deserialize(b"\x08\x07")
        assert decoded.c == 7
        assert decoded.serialize() == b"\x08\x07"


class TestUnknownFields:
    def test_unknown_fields_are_skipped(self):
        injected = (
            b"\x10\x96\x01"  # tag 2 varint
            + b"\x49" + b"\x01" * 8  # tag 9 fixed64
            + b"\x55" + b"\x02" * 4  # tag 10 fixed32
            + b"\x5a\x02hi"  # tag 11 length-delimited
        )
        data = b"\x08\x07" + injected + b"\x1a\x01x"
        decoded = WIRE.Pair.deserialize(data)
        assert decoded == WIRE.Pair(a=7, b="x")

    def test_known_tag_with_wrong_wire_type_is_skipped(self):
        decoded = WIRE.Pair.deserialize(b"\x0a\x01\x05" + b"\x08\x03")
        assert decoded.a == 3

    def test_empty_input(self):
        assert WIRE.Pair.deserialize(b"") == WIRE.Pair()


class TestDecodeErrors:
    def test_field_id_zero(self):
        with pytest.raises(DecodeError, match="Invalid field id: 0"):
            WIRE.Pair.deserialize(b"\x00\x01")

    def test_unknown_wire_type(self):
        with pytest.raises(DecodeError, match="unknown wire type"):
            WIRE.Pair.deserialize(b"\x2b\x00")

    def test_length_exceeds_input(self):
        with pytest.raises(DecodeError):
            WIRE.Pair.deserialize(b"\x1a\x05ab")

    def test_truncated_value(self):
        with pytest.raises(DecodeError):
            WIRE.Pair.deserialize(b"\x08")


REQ = _compile("""\
message Leaf { optional int32 value = 1; }
message Holder {
    optional int32 n = 1;
    required Leaf leaf = 2;
    required int32 count = 3;
    required string name = 4;
}
""")


class TestRequiredFields:
    def test_missing_message_raises(self):
        with pytest.raises(RequiredFieldError, match="leaf: Required by proto specification."):
            REQ.Holder(n=5, name="x").serialize()

    def test_nothing_written_on_failure(self):
        stream = io.BytesIO()
        with pytest.raises(RequiredFieldError) as exc_info:
            REQ.Holder(n=5, leaf=REQ.Leaf()).serialize_to(stream)
        assert exc_info.value.field_name == "name"
        assert stream.getvalue() == b""

    def test_required_scalar_is_written_at_zero(self):
        data = REQ.Holder(leaf=REQ.Leaf(), name="").serialize()
        assert b"\x18\x00" in data


MERGE = _compile("""\
message Inner { repeated int32 values = 1; optional string name = 2; }
message Outer { optional Inner inner = 1; repeated Inner items = 2; }
""")


class TestMerge:
    def test_singular_message_merges_into_existing(self):
        existing = MERGE.Outer(inner=MERGE.Inner(values=[1], name="keep"))
        update = MERGE.Outer(inner=MERGE.Inner(values=[2], name=None)).serialize()
        result = MERGE.Outer.deserialize(update, existing)
        assert result is existing
        assert result.inner.values == [1, 2]
        assert result.inner.name == "keep"

    def test_repeated_occurrences_of_singular_field_merge(self):
        first = MERGE.Outer(inner=MERGE.Inner(values=[1], name="a")).serialize()
        second = MERGE.Outer(inner=MERGE.Inner(values=[2], name=None)).serialize()
        result = MERGE.Outer.deserialize(first + second)
        assert result.inner == MERGE.Inner(values=[1, 2], name="a")

    def test_repeated_messages_are_fresh(self):
        items = [MERGE.Inner(values=[1]), MERGE.Inner(values=[2])]
        data = MERGE.Outer(items=items).serialize()
        result = MERGE.Outer.deserialize(data, MERGE.Outer(items=[MERGE.Inner(name="old")]))
        assert [i.values for i in result.items] == [[], [1], [2]]


HOOKS = _compile("""\
message Tracked {
    option triggers = true;
    optional int32 n = 1;
}
message Plain { optional int32 n = 1; }
""")


class TestLifecycleHooks:
    def teardown_method(self):
        HOOKS.Tracked.hooks = type(HOOKS.Tracked.hooks)()

    def test_before_serialize_runs_first(self):
        HOOKS.Tracked.hooks.before_serialize = lambda m: setattr(m, "n", 42)
        assert HOOKS.Tracked.deserialize(HOOKS.Tracked(n=1).serialize()).n == 42

    def test_after_deserialize(self):
        seen = []
        HOOKS.Tracked.hooks.after_deserialize = seen.append
        decoded = HOOKS.Tracked.deserialize(b"\x08\x05")
        assert seen == [decoded]

    def test_hooks_absent_when_disabled(self):
        assert not hasattr(HOOKS.Plain, "hooks")

    def test_hooks_are_not_fields(self):
        assert [f.name for f in dataclasses.fields(HOOKS.Tracked)] == ["n"]


class TestRecursiveTypes:
    def test_self_recursive(self):
        mod = _compile("""\
message Node {
    optional int32 value = 1;
    repeated Node children = 2;
    optional Node next = 3;
}
""")
        tree = mod.Node(
            value=1,
            children=[mod.Node(value=2), mod.Node(value=3, children=[mod.Node(value=4)])],
            next=mod.Node(value=5),
        )
        assert mod.Node.deserialize(tree.serialize()) == tree

    def test_mutual_recursion(self):
        mod = _compile("""\
message A { optional B b = 1; optional int32 x = 2; }
message B { optional A a = 1; }
""")
        value = mod.A(b=mod.B(a=mod.A(x=9)), x=1)
        assert mod.A.deserialize(value.serialize()) == value

    def test_deep_nesting(self):
        mod = _compile("""\
package deep;
message L1 { message L2 { message L3 { message L4 {
    enum Mode { OFF = 0; ON = 1; }
    optional Mode mode = 1;
    optional string label = 2;
} } } optional L2.L3.L4 leaf = 1; }
""")
        leaf_type = mod.L1.L2.L3.L4
        message = mod.L1(leaf=leaf_type(mode=leaf_type.Mode.ON, label="deep"))
        assert mod.L1.deserialize(message.serialize()) == message
        assert mod.MESSAGE_TYPES["deep.L1.L2.L3.L4"] is leaf_type
        assert mod.ENUM_TYPES["deep.L1.L2.L3.L4.Mode"] is leaf_type.Mode


class TestDefaults:
    def test_explicit_defaults(self):
        mod = _compile("""\
enum Color { RED = 0; GREEN = 1; BLUE = 2; }
message Defaulted {
    optional int32 n = 1 [default = 42];
    optional string s = 2 [default = "hi"];
    optional Color c = 3 [default = BLUE];
    optional double d = 4 [default = -inf];
    optional bool flag = 5 [default = true];
    optional bytes raw = 6 [default = "ab"];
}
""")
        message = mod.Defaulted()
        assert message.n == 42
        assert message.s == "hi"
        assert message.c is mod.Color.BLUE
        assert message.d == float("-inf")
        assert message.flag is True
        assert message.raw == b"ab"
        # The enum at its default is not written
        assert b"\x18" not in message.serialize()
        assert mod.Defaulted.deserialize(b"") == message

    def test_keyword_field_names(self):
        mod = _compile("message M { optional int32 class = 1; optional string serialize = 2; }")
        message = mod.M(class_=3, serialize_="x")
        assert mod.M.deserialize(message.serialize()) == message


class TestPythonNames:
    def test_keyword_enum_members(self):
        mod = _compile("""\
enum Mode { None = 0; True = 1; }
enum Kind { class = 0; pass = 1; }
message Holder {
    optional Mode mode = 1;
    optional Kind kind = 2 [default = pass];
}
""")
        assert mod.Mode.None_ == 0
        assert mod.Mode.True_ == 1
        assert mod.Holder().kind is mod.Kind.pass_
        message = mod.Holder(mode=mod.Mode.True_, kind=mod.Kind.class_)
        assert mod.Holder.deserialize(message.serialize()) == message

    def test_keyword_message_name(self):
        mod = _compile("""\
package names;
message global { optional int32 n = 1; }
message Holder { optional global g = 1; }
""")
        assert mod.MESSAGE_TYPES["names.global"] is mod.global_
        message = mod.Holder(g=mod.global_(n=7))
        assert mod.Holder.deserialize(message.serialize()) == message

    def test_type_named_like_module_alias(self):
        mod = _compile("message Optional { optional int32 n = 1; }")
        assert mod.MESSAGE_TYPES["Optional"] is mod.Optional_
        assert mod.Optional_.deserialize(mod.Optional_(n=2).serialize()).n == 2

    def test_escaped_field_does_not_collide(self):
        mod = _compile("message M { optional int32 from = 1; optional string from_ = 2; }")
        assert [f.name for f in dataclasses.fields(mod.M)] == ["from__", "from_"]
        message = mod.M(from__=1, from_="x")
        assert message.serialize() == b"\x08\x01\x12\x01x"
        assert mod.M.deserialize(message.serialize()) == message

    def test_duplicate_field_name_rejected(self):
        schema = Schema()
        message = schema.add_message("M")
        schema.add_field(message, FieldDef("n", 1, ProtoType.INT32))
        schema.add_field(message, FieldDef("n", 2, ProtoType.INT32))
        with pytest.raises(GeneratorError, match="duplicate field in 'M': 'n'"):
            generate_module(schema)


RANGES = _compile("""\
enum Color { RED = 0; }
message Nums {
    optional int32 i32 = 1;
    optional int64 i64 = 2;
    optional uint32 u32 = 3;
    optional sint32 s32 = 4;
    optional fixed32 f32 = 5;
    optional sfixed64 sf64 = 6;
    optional float flt = 7;
    optional Color color = 8;
}
""")


class TestEncodeRange:
    @pytest.mark.parametrize(
        "name, value",
        [
            ("i32", 2**31),
            ("i32", -(2**31) - 1),
            ("i64", 2**63),
            ("u32", 2**40),
            ("u32", -1),
            ("s32", 2**31),
            ("f32", -1),
            ("f32", 2**32),
            ("sf64", 2**63),
            ("flt", 1e300),
            ("flt", "1.5"),
            ("color", 2**40),
        ],
    )
    def test_out_of_range_raises_encode_error(self, name, value):
        stream = io.BytesIO()
        with pytest.raises(EncodeError):
            RANGES.Nums(**{name: value}).serialize_to(stream)
        assert stream.getvalue() == b""

    def test_bounds_are_accepted(self):
        message = RANGES.Nums(
            i32=-(2**31), i64=2**63 - 1, u32=2**32 - 1, s32=2**31 - 1, f32=2**32 - 1
        )
        assert RANGES.Nums.deserialize(message.serialize()) == message
