from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from protoc_codec.errors import ProtocCodecError
from protoc_codec.generator import GeneratorOptions, save
from protoc_codec.parser import parse_proto_file


def _find_files(working_path: str, extensions: List[str]) -> List[str]:
    """Recursively find files with given extensions under working_path."""
    results = []
    for ext in extensions:
        results.extend(str(p) for p in Path(working_path).rglob(f"*{ext}"))
    return sorted(results)


def _output_path(proto_file: str, output_dir: Optional[str]) -> str:
    source = Path(proto_file)
    name = f"{source.stem}_codec.py"
    if output_dir:
        return str(Path(output_dir) / name)
    return str(source.with_name(name))


def run(working_path: str, output_dir: Optional[str] = None, namespace: Optional[str] = None) -> None:
    """Main pipeline: find, parse, generate."""
    # 1. Find input files
    proto_files = _find_files(working_path, [".proto"])

    if not proto_files:
        print(f"No .proto files found under {working_path}")
        sys.exit(1)

    print(f"Found {len(proto_files)} proto file(s)")

    # 2. Parse and generate, one module per file
    failed = 0
    for pf in proto_files:
        try:
            schema = parse_proto_file(pf)
            options = GeneratorOptions(
                default_namespace=namespace,
                source_name=Path(pf).name,
            )
            out = save(schema, _output_path(pf, output_dir), options)
        except ProtocCodecError as e:
            print(f"FATAL: {pf}: {e}", file=sys.stderr)
            failed += 1
            continue
        print(
            f"  Generated {out}: {len(schema.messages)} message(s), "
            f"{len(schema.enums)} enum(s)"
        )

    if failed:
        print(f"{failed} file(s) failed", file=sys.stderr)
        sys.exit(1)

    print("Done!")


def main():
    parser = argparse.ArgumentParser(
        description="Protobuf to Python codec generator",
    )
    parser.add_argument(
        "--working-path",
        required=True,
        help="Path to scan for .proto files",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for generated modules (default: next to each .proto file)",
    )
    parser.add_argument(
        "--namespace",
        default=None,
        help="Root namespace for types without a namespace option (default: the proto package)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    run(args.working_path, args.output_dir, args.namespace)


if __name__ == "__main__":
    main()
