from __future__ import annotations

import logging
import sys
import types
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from jinja2 import Environment

from protoc_codec.errors import GeneratorError
from protoc_codec.generator.message_assembler import MessageAssembler, get_template_env
from protoc_codec.models import Schema
from protoc_codec.resolver import TypeResolver
from protoc_codec.runtime import RUNTIME_VERSION

_LOG = logging.getLogger(__name__)


@dataclass
class GeneratorOptions:
    """Knobs for rendering a generated module."""

    # Replaces the schema's root namespace when set.
    default_namespace: Optional[str] = None
    module_docstring: str = "Protocol buffer messages."
    source_name: str = ""


@dataclass
class Artifact:
    kind: str  # "message" or "enum"
    name: str
    full_name: str
    source: str


def walk(schema: Schema, env: Optional[Environment] = None) -> List[Artifact]:
    """Compile every root-level enum and message, in declaration order.

    Root-level enums are emitted ahead of root-level messages. Nested types
    are rendered inside their enclosing message.
    """
    resolver = TypeResolver(schema)
    assembler = MessageAssembler(schema, resolver, env)
    artifacts: List[Artifact] = []

    for index in schema.top_enums:
        enum_def = schema.enum(index)
        full_name = resolver.full_name(enum_def)
        _LOG.debug("Compiling enum %s", full_name)
        artifacts.append(
            Artifact(
                "enum",
                resolver.class_name(enum_def),
                full_name,
                assembler.render_enum(enum_def),
            )
        )

    for index in schema.top_messages:
        message = schema.message(index)
        full_name = resolver.full_name(message)
        _LOG.debug("Compiling message %s (%d fields)", full_name, len(message.fields))
        artifacts.append(
            Artifact(
                "message",
                resolver.class_name(message),
                full_name,
                assembler.render_message(message),
            )
        )

    return artifacts


def _registry(schema: Schema, resolver: TypeResolver) -> Tuple[List, List]:
    messages = [
        (repr(resolver.full_name(m)), resolver.python_path(m)) for m in schema.messages
    ]
    enums = [(repr(resolver.full_name(e)), resolver.python_path(e)) for e in schema.enums]
    return messages, enums


def generate_module(schema: Schema, options: Optional[GeneratorOptions] = None) -> str:
    """Render the whole schema as the source of one Python module."""
    options = options or GeneratorOptions()
    if options.default_namespace is not None:
        schema = _with_namespace(schema, options.default_namespace)

    env = get_template_env()
    artifacts = walk(schema, env)
    messages, enums = _registry(schema, TypeResolver(schema))
    template = env.get_template("module.py.j2")
    source = template.render(
        docstring=options.module_docstring,
        source_name=options.source_name or schema.source_file,
        runtime_version=RUNTIME_VERSION,
        artifacts=artifacts,
        messages=messages,
        enums=enums,
    )
    check_source(source)
    return source


def check_source(source: str, filename: str = "<generated>") -> None:
    """Raise GeneratorError when source is not valid Python."""
    try:
        compile(source, filename, "exec")
    except SyntaxError as e:
        raise GeneratorError(
            f"generated code does not compile: {e.msg} at line {e.lineno}: "
            f"{(e.text or '').strip()}"
        ) from e


def _with_namespace(schema: Schema, namespace: str) -> Schema:
    # Shallow copy: the node lists are shared and never mutated.
    return Schema(
        namespace=namespace,
        options=schema.options,
        messages=schema.messages,
        enums=schema.enums,
        top_messages=schema.top_messages,
        top_enums=schema.top_enums,
        source_file=schema.source_file,
    )


def save(schema: Schema, path: str, options: Optional[GeneratorOptions] = None) -> str:
    """Write the generated module to path and return the path."""
    source = generate_module(schema, options)
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(source, encoding="utf-8")
    _LOG.debug("Wrote %s (%d bytes)", out, len(source))
    return str(out)


def load_module(source: str, module_name: str) -> types.ModuleType:
    """Execute generated source as a module registered under module_name."""
    module = types.ModuleType(module_name)
    module.__file__ = f"<{module_name}>"
    sys.modules[module_name] = module
    try:
        exec(compile(source, module.__file__, "exec"), module.__dict__)
    except BaseException:
        del sys.modules[module_name]
        raise
    _LOG.debug("Loaded generated module %s", module_name)
    return module


def compile_schema(
    schema: Schema,
    module_name: str,
    options: Optional[GeneratorOptions] = None,
) -> types.ModuleType:
    """Generate and load a module for schema in one step."""
    return load_module(generate_module(schema, options), module_name)
