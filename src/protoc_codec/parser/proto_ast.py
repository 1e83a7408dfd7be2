"""AST node definitions for protobuf (.proto) files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ProtoField:
    """A field declaration: [label] Type name = number [options];"""

    type_name: str
    field_name: str
    field_number: int
    label: str = ""
    options: Dict[str, Any] = field(default_factory=dict)
    line: int = 0

    @property
    def is_repeated(self) -> bool:
        return self.label == "repeated"


@dataclass
class ProtoEnum:
    """An enum definition; values keep declaration order."""

    name: str
    values: Dict[str, int] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProtoMessage:
    """A message definition, possibly containing nested messages and enums."""

    name: str
    fields: List[ProtoField] = field(default_factory=list)
    nested_messages: List[ProtoMessage] = field(default_factory=list)
    nested_enums: List[ProtoEnum] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProtoFile:
    """Top-level parsed representation of a .proto file."""

    syntax: str = "proto2"
    package: Optional[str] = None
    imports: List[str] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    messages: List[ProtoMessage] = field(default_factory=list)
    enums: List[ProtoEnum] = field(default_factory=list)
