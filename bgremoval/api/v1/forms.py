from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from pydantic import TypeAdapter, ValidationError

from bgremoval.core.errors import BadRequest


def parse_json_field(raw: str, adapter: TypeAdapter, field: str) -> Any:
    """Validate a JSON-encoded multipart field, reporting the first problem."""
    try:
        return adapter.validate_json(raw)
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ()))
        where = f"{field}.{loc}" if loc else field
        raise BadRequest(f"Invalid {where}: {first.get('msg', 'validation error')}") from None


def parse_bool_flag(value: str | bool | None, default: bool = True) -> bool:
    """'true'/'1' -> True, 'false'/'0' -> False, anything else -> default."""
    if isinstance(value, bool):
        return value
    normalized = (value or "").strip().lower()
    if normalized in ("true", "1"):
        return True
    if normalized in ("false", "0"):
        return False
    return default


def check_count(items: list, field: str, minimum: int, maximum: int) -> None:
    if len(items) < minimum:
        raise BadRequest(f"{field} must contain at least {minimum} item(s), got {len(items)}")
    if len(items) > maximum:
        raise BadRequest(f"{field} cannot contain more than {maximum} items, got {len(items)}")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def attachment(prefix: str, extension: str) -> dict[str, str]:
    return {
        "Content-Disposition": f'attachment; filename="{prefix}-{int(time.time() * 1000)}.{extension}"'
    }
