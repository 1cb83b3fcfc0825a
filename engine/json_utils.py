import dataclasses
import json
import logging
from datetime import date, datetime
from enum import Enum
from pathlib import PurePath


def safe_json(value):
    """Return a JSON-compatible copy of ``value``."""
    if value is None or isinstance(value, (str, int, bool)):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return value
    if isinstance(value, Enum):
        return safe_json(value.value)
    if isinstance(value, dict):
        return {str(k): safe_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [safe_json(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((safe_json(v) for v in value), key=str)
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if hasattr(value, "to_dict"):
        return safe_json(value.to_dict())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return safe_json(dataclasses.asdict(value))
    return str(value)


def safe_json_dumps(value, **kwargs):
    return json.dumps(safe_json(value), ensure_ascii=False, **kwargs)


def json_sanity_check():
    # Fails fast at startup if the serializer cannot round-trip the shapes we log.
    sample = {"set": {"b", "a"}, "path": PurePath("/tmp"), "nan": float("nan")}
    encoded = safe_json_dumps(sample, sort_keys=True)
    decoded = json.loads(encoded)
    if decoded.get("set") != ["a", "b"]:
        logging.error("json_sanity_check_failed payload=%s", encoded)
        raise RuntimeError("json_sanity_check_failed")
