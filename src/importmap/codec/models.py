"""Data models for delimited text parsing."""

from enum import Enum


class Delimiter(str, Enum):
    """Supported field delimiters."""

    COMMA = "comma"
    TAB = "tab"

    @property
    def char(self) -> str:
        """The literal character used to separate fields."""
        return "\t" if self is Delimiter.TAB else ","


class InputFormatError(Exception):
    """Exception raised when an uploaded file cannot be used as import input."""

    pass


class EmptyInputError(InputFormatError):
    """Exception raised when input holds no rows after blank lines are dropped."""

    def __init__(self, message: str = "The CSV file appears to be empty"):
        super().__init__(message)
