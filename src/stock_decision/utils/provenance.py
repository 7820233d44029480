"""Response envelope helpers: metadata block, error shape and JSON conversion."""

import dataclasses
import math
from typing import Any

from stock_decision import ENGINE_VERSION, SCHEMA_VERSION, SERVER_VERSION

# Every tool error uses one of these types
ERROR_TYPES: tuple[str, ...] = ("invalid_symbol", "invalid_input", "data_unavailable")


def build_meta(tool: str, duration_ms: float | None = None) -> dict[str, Any]:
    """
    Metadata block attached to every tool response.

    Args:
        tool: Name of the tool producing this response
        duration_ms: Execution time in milliseconds (optional)

    Returns:
        Dict with server, schema and engine versions plus the tool name
    """
    meta: dict[str, Any] = {
        "server_version": SERVER_VERSION,
        "schema_version": SCHEMA_VERSION,
        "engine_version": ENGINE_VERSION,
        "tool": tool,
    }
    if duration_ms is not None:
        meta["duration_ms"] = round(duration_ms, 1)
    return meta


def build_error_response(
    error_type: str,
    message: str,
    symbol: str | None = None,
) -> dict[str, Any]:
    """
    Standard error envelope returned instead of raising out of a tool.

    Args:
        error_type: One of ERROR_TYPES
        message: Human-readable error message
        symbol: Symbol that caused the error (if applicable)

    Raises:
        ValueError: On an error_type outside ERROR_TYPES
    """
    if error_type not in ERROR_TYPES:
        raise ValueError(f"Unknown error_type: {error_type}")

    response: dict[str, Any] = {
        "error": True,
        "error_type": error_type,
        "message": message,
        "meta": build_meta("error"),
    }
    if symbol is not None:
        response["symbol"] = symbol
    return response


def to_jsonable(obj: Any) -> Any:
    """
    Convert dataclass records to plain JSON-safe structures.

    NaN and infinities become None so json.dumps output stays valid JSON.
    """
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        obj = dataclasses.asdict(obj)
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    if isinstance(obj, float) and (math.isnan(obj) or math.isinf(obj)):
        return None
    return obj
