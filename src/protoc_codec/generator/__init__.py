from .schema_walker import (
    Artifact,
    GeneratorOptions,
    compile_schema,
    generate_module,
    load_module,
    save,
    walk,
)

__all__ = [
    "Artifact",
    "GeneratorOptions",
    "compile_schema",
    "generate_module",
    "load_module",
    "save",
    "walk",
]
