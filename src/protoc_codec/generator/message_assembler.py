from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from jinja2 import Environment, FileSystemLoader

from protoc_codec.generator.field_codec import FieldCodec
from protoc_codec.models import EnumDef, MessageDef, Schema
from protoc_codec.resolver import (
    GENERATED_MEMBERS,
    MODULE_ALIASES,
    TypeResolver,
    python_identifiers,
)


def get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


class MessageAssembler:
    """Renders the Python class for a message and, recursively, its nested types."""

    def __init__(self, schema: Schema, resolver: TypeResolver, env: Environment | None = None):
        self._schema = schema
        self._resolver = resolver
        env = env or get_template_env()
        self._message_template = env.get_template("message.py.j2")
        self._enum_template = env.get_template("enum.py.j2")

    def render_enum(self, enum_def: EnumDef) -> str:
        members = self._resolver.member_names(enum_def)
        source = self._enum_template.render(
            name=self._resolver.class_name(enum_def),
            full_name=self._resolver.full_name(enum_def),
            values=[(members[m], v) for m, v in enum_def.values.items()],
        )
        return source.rstrip("\n")

    def render_message(self, message: MessageDef) -> str:
        # Nested enums first so that field defaults can name their members.
        nested_types: List[str] = [
            self.render_enum(self._schema.enum(i)) for i in message.enums
        ]
        nested_types.extend(
            self.render_message(self._schema.message(i)) for i in message.messages
        )

        codecs = self.field_codecs(message)
        fields: List[Dict[str, str]] = []
        field_docs: List[str] = []
        branches = []
        checks: List[str] = []
        encode_lines: List[str] = []
        for codec in codecs:
            f = codec.field
            fields.append({
                "attribute": codec.attribute,
                "annotation": codec.annotation(),
                "default": codec.default_expression(),
            })
            packed = ", packed" if f.is_packed else ""
            field_docs.append(
                f"{codec.attribute} ({f.rule.value} {codec.qualified_type()} = {f.tag}{packed})"
            )
            branches.extend(codec.decode_branches())
            checks.extend(codec.required_check())
            encode_lines.extend(codec.encode_lines())

        source = self._message_template.render(
            name=self._resolver.class_name(message),
            path=self._resolver.python_path(message),
            full_name=self._resolver.full_name(message),
            field_docs=field_docs,
            nested_types=nested_types,
            fields=fields,
            hooks=message.hooks_enabled,
            branches=branches,
            checks=checks,
            encode_lines=encode_lines,
        )
        return source.rstrip("\n")

    def field_codecs(self, message: MessageDef) -> List[FieldCodec]:
        resolver = self._resolver
        reserved = set(GENERATED_MEMBERS | MODULE_ALIASES)
        reserved.update(resolver.class_name(self._schema.message(i)) for i in message.messages)
        reserved.update(resolver.class_name(self._schema.enum(i)) for i in message.enums)
        attributes = python_identifiers(
            [f.name for f in message.fields],
            reserved,
            what=f"field in '{resolver.full_name(message)}'",
        )
        return [
            FieldCodec(self._schema, resolver, f, attribute)
            for f, attribute in zip(message.fields, attributes)
        ]
