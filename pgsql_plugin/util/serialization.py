import base64
import datetime
import decimal
import json
import uuid

from pydantic import BaseModel


def make_serializable(value):
    """Convert query results into JSON-compatible values."""
    if isinstance(value, BaseModel):
        return make_serializable(value.model_dump())
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    if isinstance(value, decimal.Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, Exception):
        return str(value)
    if isinstance(value, dict):
        return {k: make_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [make_serializable(v) for v in value]
    return value


def to_json(value, indent=2) -> str:
    return json.dumps(make_serializable(value), indent=indent, ensure_ascii=False, default=str)
