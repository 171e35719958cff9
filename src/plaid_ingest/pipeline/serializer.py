"""Conversion of records into a 2D block of sheet values."""

from typing import Any, List, Sequence

from ..exceptions import SchemaError
from ..models.core import Record


def serialize(records: Sequence[Record], include_headers: bool = False) -> List[List[Any]]:
    """
    Turn records into rows of values

    Column order follows the first record's fields. When include_headers is
    set and there is at least one record, the field names are prepended as
    a header row.

    Args:
        records: Records sharing one field list
        include_headers: Prepend a header row

    Returns:
        List of rows; empty when there are no records

    Raises:
        SchemaError: If a record's fields differ from the first record's
    """
    if not records:
        return []

    fields = records[0].fields
    block = []
    for position, record in enumerate(records):
        if record.fields != fields:
            raise SchemaError(
                f"Record {position} fields do not match header fields",
                transaction_id=record.get("Transaction ID")
            )
        block.append(record.values())

    if include_headers:
        block.insert(0, list(fields))
    return block
