from __future__ import annotations

from pathlib import Path

from ..models.raw_table import RawTable

"""Delimited-text reader for CSV uploads.

- Line 1 is the header row, every following non-blank line is a data row.
- Fields are comma separated and optionally double quoted. A quote toggles
  quoting and is dropped; doubled quotes are NOT an escape (lenient parser,
  not RFC 4180).
- Short rows are padded with "" and long rows truncated to the header width.
"""

__all__ = [
    "EmptyInputError",
    "UploadReadError",
    "parse_line",
    "parse_table",
    "read_upload",
]


class EmptyInputError(Exception):
    """Raised when the upload lacks a header row or any data row."""


class UploadReadError(Exception):
    """Raised when the uploaded file cannot be read or decoded as UTF-8."""


def parse_line(line: str) -> list[str]:
    """Split one line into trimmed field values.

    >>> parse_line('a,"b,c",d')
    ['a', 'b,c', 'd']
    >>> parse_line('x,,y')
    ['x', '', 'y']
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    # 行末: 末尾カンマなら空フィールドが1つ増える
    fields.append("".join(current).strip())
    return fields


def parse_table(text: str) -> RawTable:
    """Parse upload text into a RawTable.

    Steps:
    1. Split on newline and drop blank lines
    2. Require a header line plus at least one data line
    3. First line -> headers (duplicates kept, positionally distinct)
    4. Remaining lines -> rows, padded/truncated to the header width

    Raises:
        EmptyInputError: Fewer than 2 non-blank lines
    """
    lines = [line for line in text.split("\n") if line.strip()]
    if len(lines) < 2:
        raise EmptyInputError("CSV must have at least a header row and one data row")

    headers = tuple(parse_line(lines[0]))
    width = len(headers)
    rows: list[tuple[str, ...]] = []
    for line in lines[1:]:
        values = parse_line(line)
        if len(values) < width:
            values.extend([""] * (width - len(values)))
        rows.append(tuple(values[:width]))
    return RawTable(headers=headers, rows=tuple(rows))


def read_upload(path: Path) -> str:
    """Read an uploaded file fully and decode it as UTF-8 (BOM tolerated).

    This is the only I/O step before parsing; nothing is streamed.

    Raises:
        UploadReadError: File missing/unreadable or not valid UTF-8
    """
    try:
        content = path.read_bytes()
    except OSError as e:
        raise UploadReadError(f"cannot read upload {path}: {e}") from e
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise UploadReadError(f"upload {path.name} is not valid UTF-8: {e}") from e
