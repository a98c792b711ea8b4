"""Delimited text codec for import files."""

from .models import Delimiter, InputFormatError, EmptyInputError
from .parser import (
    ACCEPTED_EXTENSIONS,
    check_file_name,
    parse_delimited,
    serialize_delimited,
    escape_field,
)

__all__ = [
    "Delimiter",
    "InputFormatError",
    "EmptyInputError",
    "ACCEPTED_EXTENSIONS",
    "check_file_name",
    "parse_delimited",
    "serialize_delimited",
    "escape_field",
]
