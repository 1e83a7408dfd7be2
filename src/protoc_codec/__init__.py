"""Compile protobuf message schemas into Python encode/decode classes."""

__version__ = "0.1.0"
