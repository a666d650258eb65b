from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable


def serialize_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: serialize_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_dict(row: Any) -> Any:
    """Serialize ORM rows by mapped columns; plain objects fall back to their attributes."""
    if isinstance(row, dict):
        return serialize_value(row)
    if hasattr(row, "_asdict"):
        return serialize_value(row._asdict())
    try:
        mapper = sa_inspect(type(row))
    except NoInspectionAvailable:
        mapper = None
    if mapper is not None and hasattr(mapper, "columns"):
        return {column.key: serialize_value(getattr(row, column.key)) for column in mapper.columns}
    if hasattr(row, "__dict__"):
        return {key: serialize_value(val) for key, val in vars(row).items() if not key.startswith("_")}
    return serialize_value(row)
