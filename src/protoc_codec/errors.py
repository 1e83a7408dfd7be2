"""Exception hierarchy for protoc_codec.

Schema and generator errors are raised while compiling; codec errors are
raised by generated code through the shared runtime.
"""

from __future__ import annotations


class ProtocCodecError(Exception):
    """Base exception for all protoc_codec errors."""


class SchemaError(ProtocCodecError):
    """Raised when a schema cannot be built from its source.

    Examples:
        - A field refers to a type name that cannot be resolved
        - A default value literal does not fit the field type
    """


class GeneratorError(ProtocCodecError):
    """Raised when a schema cannot be compiled into Python source."""


class CodecError(ProtocCodecError):
    """Base exception for failures inside generated encode/decode routines."""


class DecodeError(CodecError):
    """Raised when binary input is malformed.

    Examples:
        - A key with field id 0
        - A length-delimited payload longer than the remaining input
        - An unsupported wire type on an unknown field
        - Truncated varints or fixed-width values
    """


class EncodeError(CodecError):
    """Raised when a message cannot be written."""


class RequiredFieldError(EncodeError):
    """Raised when a required string, bytes or message field is absent."""

    def __init__(self, field_name: str, message: str = "Required by proto specification."):
        super().__init__(f"{field_name}: {message}")
        self.field_name = field_name


class DecodeEnd(Exception):
    """The input ended cleanly at a key boundary.

    Not an error: it terminates the decode loop of a message.
    """
