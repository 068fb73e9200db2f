"""
Serialize aggregated stats for downstream consumers.

JSON keeps the full nested structure. CSV flattens to the scalar fields of
each record; nested lists (top pages, daily breakdowns) are left out.
"""
import csv
import json
from collections.abc import Mapping, Sequence
from io import StringIO
from typing import Any, Literal

from pydantic import BaseModel

ExportFormat = Literal["json", "csv"]


def _as_dict(record: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json")
    return dict(record)


def to_json(data: Sequence[BaseModel | Mapping[str, Any]]) -> str:
    """Pretty-printed JSON array of the records."""
    return json.dumps([_as_dict(record) for record in data], indent=2)


def to_csv(data: Sequence[BaseModel | Mapping[str, Any]]) -> str:
    """CSV with a header row taken from the first record.

    Values containing a comma are quoted. Rows are separated by newlines
    with no trailing newline. Empty input gives an empty string.
    """
    if not data:
        return ""

    rows = [_as_dict(record) for record in data]
    headers = [
        key for key, value in rows[0].items()
        if not isinstance(value, (dict, list))
    ]

    output = StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([row.get(header, "") for header in headers])

    return output.getvalue().removesuffix("\n")


def export_aggregated_data(
    format: ExportFormat,
    data: Sequence[BaseModel | Mapping[str, Any]],
) -> str:
    """Export daily or weekly stats as JSON or CSV.

    Raises:
        ValueError: If format is not json or csv
    """
    if format == "json":
        return to_json(data)
    if format == "csv":
        return to_csv(data)
    raise ValueError(f"Unsupported export format: {format!r}. Use 'json' or 'csv'.")
