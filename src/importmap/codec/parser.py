"""Parser and serializer for quoted delimited text."""

import logging
from pathlib import PurePath
from typing import Optional, Sequence, Union

from .models import Delimiter, EmptyInputError, InputFormatError

logger = logging.getLogger(__name__)

ACCEPTED_EXTENSIONS = (".csv", ".tsv", ".txt")

# Characters that force a field to be quoted on output
_QUOTE_TRIGGERS = (",", '"', "\n", "\r")


def _resolve_delimiter(delimiter: Union[Delimiter, str]) -> str:
    if isinstance(delimiter, Delimiter):
        return delimiter.char
    return Delimiter(delimiter).char


def check_file_name(file_name: str) -> None:
    """
    Reject file names that do not look like delimited text.

    Raises:
        InputFormatError: If the extension is not one of ACCEPTED_EXTENSIONS
    """
    suffix = PurePath(file_name or "").suffix.lower()
    if suffix not in ACCEPTED_EXTENSIONS:
        raise InputFormatError(
            f"Unrecognized file '{file_name}': please select a valid CSV file"
        )


def parse_delimited(
    text: str, delimiter: Union[Delimiter, str] = Delimiter.COMMA
) -> list[list[str]]:
    """
    Parse delimited text into rows of trimmed fields.

    Lines are split on line breaks and fully blank lines are dropped. Each
    line is scanned character by character; a double quote toggles the
    in-quote state and is not kept, and the delimiter only splits fields
    outside quotes. Doubled quotes inside quoted fields are not unescaped.

    Args:
        text: Raw file contents
        delimiter: Field delimiter selector

    Returns:
        Ordered list of rows, each an ordered list of fields

    Raises:
        EmptyInputError: If no non-blank line remains
    """
    delim = _resolve_delimiter(delimiter)
    lines = [line for line in text.split("\n") if line.strip() != ""]

    if not lines:
        raise EmptyInputError()

    rows = []
    for line in lines:
        fields = []
        current = []
        in_quotes = False

        for char in line:
            if char == '"':
                in_quotes = not in_quotes
            elif char == delim and not in_quotes:
                fields.append("".join(current).strip())
                current = []
            else:
                current.append(char)

        fields.append("".join(current).strip())
        rows.append(fields)

    logger.debug(f"Parsed {len(rows)} rows using delimiter {delim!r}")
    return rows


def escape_field(value: str, delimiter: str = ",") -> str:
    """Quote a field if it contains a delimiter, quote or line break."""
    needs_quote = delimiter in value or any(c in value for c in _QUOTE_TRIGGERS)
    escaped = value.replace('"', '""')
    return f'"{escaped}"' if needs_quote else escaped


def serialize_delimited(
    rows: Sequence[Sequence[str]],
    header: Optional[Sequence[str]] = None,
    delimiter: Union[Delimiter, str] = Delimiter.COMMA,
) -> str:
    """
    Serialize rows back to delimited text.

    Args:
        rows: Data rows to write
        header: Optional header row written first (caption order on export)
        delimiter: Field delimiter selector

    Returns:
        The document as a single string with '\\n' line endings
    """
    delim = _resolve_delimiter(delimiter)
    output = []

    if header is not None:
        output.append(delim.join(escape_field(str(h or ""), delim) for h in header))

    for row in rows:
        output.append(
            delim.join(escape_field("" if v is None else str(v), delim) for v in row)
        )

    return "\n".join(output)
