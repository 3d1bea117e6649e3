import math
import re
from typing import Any


# Ethereum address regex
ETH_ADDRESS_REGEX = re.compile(r"^0x[a-fA-F0-9]{40}$")


def validate_eth_address(address: str) -> str:
    """Validate Ethereum address format"""
    if not address:
        raise ValueError("Address cannot be empty")

    address = address.strip()

    if not ETH_ADDRESS_REGEX.match(address):
        raise ValueError(f"Invalid Ethereum address format: {address}")

    return address


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 0


def coerce_float(value: Any, default: float = 0.0) -> float:
    """Best-effort float conversion for loosely typed API fields.

    ``None``, empty strings, non-numeric text and non-finite values all
    collapse to ``default`` so one malformed field never drops a record.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return float(value)
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(parsed):
        return default
    return parsed


def coerce_int(value: Any, default: int = 0) -> int:
    return int(coerce_float(value, float(default)))


def coerce_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)
