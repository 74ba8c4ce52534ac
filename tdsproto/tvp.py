"""Table-valued parameters: validation, type names and column selection.

A TVP value is a sequence of dataclass instances, one per row. Each dataclass
field is a column unless its metadata skips it: ``field(metadata={"tvp": "-"})``
always skips it. ``field(metadata={"json": "-"})`` skips it only when no
``"tvp"`` key is present.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional

TVP_TAG = "tvp"
JSON_TAG = "json"
SKIP_TAG_VALUE = "-"
SQL_SEPARATOR = "."

EMPTY_TYPE_NAME = "TypeName must not be empty"
TYPE_SLICE = "TVP must be slice type"
TYPE_SLICE_IS_EMPTY = "TVP mustn't be null value"
ALL_FIELDS_SKIPPED = "all fields mustn't skip"
WRONG_OBJECT_NAME = "wrong tvp name"


class TVPError(ValueError):
    """Raised when a table-valued parameter is not usable."""


def is_skip_field(
    tvp_tag_value: str,
    is_tvp_value: bool,
    json_tag_value: str,
    is_json_tag_value: bool,
) -> bool:
    """Decide from a field's tags whether it is left out of the TVP."""
    if not is_tvp_value and not is_json_tag_value:
        return False
    if is_tvp_value and tvp_tag_value != SKIP_TAG_VALUE:
        return False
    if not is_tvp_value and is_json_tag_value and json_tag_value != SKIP_TAG_VALUE:
        return False
    return True


def count_sql_separators(text: str) -> int:
    """Count the dots that separate parts of an object name."""
    return text.count(SQL_SEPARATOR)


def get_schema_and_name(tvp_name: str) -> tuple[str, str]:
    """Split ``schema.name`` into its parts, dropping square brackets."""
    if not tvp_name:
        raise TVPError(EMPTY_TYPE_NAME)
    parts = tvp_name.split(SQL_SEPARATOR)
    if len(parts) > 2:
        raise TVPError(WRONG_OBJECT_NAME)
    cleaned = [part.replace("[", "").replace("]", "") for part in parts]
    if len(cleaned) == 2:
        return cleaned[0], cleaned[1]
    return "", cleaned[0]


def _is_valid_object_name(name: str) -> bool:
    """Reject names with line breaks, quotes, semicolons or bare whitespace."""
    if not name:
        return False
    in_brackets = False
    for char in name:
        if char in "\n\r';":
            return False
        if in_brackets:
            if char == "]":
                in_brackets = False
        elif char == "[":
            in_brackets = True
        elif char.isspace():
            return False
    return True


def _is_row_class(candidate: Any) -> bool:
    return isinstance(candidate, type) and dataclasses.is_dataclass(candidate)


@dataclass
class TVP:
    """A table-valued parameter: a table type name and its rows.

    ``row_type`` names the dataclass of the rows; it is needed when the
    sequence of rows is empty and is otherwise taken from the first row.
    """

    type_name: str
    value: Any = None
    row_type: Optional[type] = None

    def _rows(self) -> Sequence[Any]:
        value = self.value
        if value is None:
            raise TVPError(TYPE_SLICE_IS_EMPTY)
        if (
            isinstance(value, (str, bytes, bytearray, Mapping))
            or not isinstance(value, Sequence)
        ):
            raise TVPError(TYPE_SLICE)
        return value

    def _row_class(self) -> type:
        rows = self._rows()
        if self.row_type is not None:
            row_class = self.row_type
        elif rows:
            row_class = type(rows[0])
        else:
            raise TVPError(TYPE_SLICE)
        if not _is_row_class(row_class):
            raise TVPError(TYPE_SLICE)
        if any(type(row) is not row_class for row in rows):
            raise TVPError(TYPE_SLICE)
        return row_class

    def check(self) -> None:
        """Raise TVPError unless the type name and rows are well formed."""
        if not self.type_name:
            raise TVPError(EMPTY_TYPE_NAME)
        if not _is_valid_object_name(self.type_name):
            raise TVPError(EMPTY_TYPE_NAME)
        if count_sql_separators(self.type_name) > 1:
            raise TVPError(WRONG_OBJECT_NAME)
        rows = self._rows()
        if self.row_type is None and not rows:
            return
        self._row_class()

    def field_names(self) -> list[str]:
        """Names of the row fields sent as columns, in declaration order."""
        row_class = self._row_class()
        fields = dataclasses.fields(row_class)
        names = []
        for row_field in fields:
            metadata = row_field.metadata
            if is_skip_field(
                metadata.get(TVP_TAG, ""),
                TVP_TAG in metadata,
                metadata.get(JSON_TAG, ""),
                JSON_TAG in metadata,
            ):
                continue
            names.append(row_field.name)
        if not names:
            raise TVPError(ALL_FIELDS_SKIPPED)
        return names