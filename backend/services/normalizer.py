"""
Data API payload normalization.

The activity and position feeds are loosely shaped: lists arrive either bare
or wrapped under one of a few keys, timestamps flip between seconds and
milliseconds, and the activity feed mixes non-trade events (rewards,
redemptions, conversions) in with trades. Everything here is pure so it can
be unit tested without a network.
"""

import math
from typing import Any, Iterable, Optional

from models.activity import Activity, Position, TradeCondition
from utils.validation import is_non_empty_str

ACTIVITY_CONTAINER_KEYS = ("data", "activities", "results")
POSITION_CONTAINER_KEYS = ("data", "positions", "results")

SUPPORTED_ACTIVITY_TYPES = frozenset({"TRADE", "MERGE"})

# Anything above this is a millisecond epoch (1e12 ms is September 2001).
_MILLISECOND_THRESHOLD = 1_000_000_000_000


def to_domain_list(raw: Any, container_keys: Iterable[str]) -> list:
    """Unwrap a feed payload into a list of records.

    Accepts a bare list or a dict holding the list under the first matching
    key in ``container_keys``. Any other shape yields ``[]``.
    """
    if isinstance(raw, list):
        return list(raw)
    if isinstance(raw, dict):
        for key in container_keys:
            value = raw.get(key)
            if isinstance(value, list):
                return list(value)
    return []


def normalize_timestamp(value: Any) -> Optional[int]:
    """Return ``value`` as unix seconds, or None when it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    if numeric > _MILLISECOND_THRESHOLD:
        return int(numeric // 1000)
    return int(numeric)


def validate_activity(raw: Any, cutoff: int) -> bool:
    """True when a raw activity row is a fresh, well-formed trade or merge."""
    if not isinstance(raw, dict):
        return False

    timestamp = normalize_timestamp(raw.get("timestamp"))
    if timestamp is None or timestamp < cutoff:
        return False

    if not is_non_empty_str(raw.get("transactionHash")):
        return False
    if not is_non_empty_str(raw.get("asset")):
        return False

    activity_type = str(raw.get("type") or "").upper()
    if activity_type not in SUPPORTED_ACTIVITY_TYPES:
        return False

    if activity_type != "MERGE" and not is_non_empty_str(raw.get("side")):
        return False

    return True


def validate_position(raw: Any) -> bool:
    if not isinstance(raw, dict):
        return False
    return is_non_empty_str(raw.get("asset")) and is_non_empty_str(raw.get("conditionId"))


def parse_activities(raw: Any, cutoff: int, default_wallet: str = "") -> list[Activity]:
    """Unwrap, filter and map an activity payload into fresh Activity models."""
    activities = []
    for item in to_domain_list(raw, ACTIVITY_CONTAINER_KEYS):
        if not validate_activity(item, cutoff):
            continue
        activities.append(
            Activity.from_data_api_response(
                item,
                timestamp=normalize_timestamp(item.get("timestamp")),
                default_wallet=default_wallet,
            )
        )
    return activities


def parse_positions(raw: Any, default_wallet: str = "") -> list[Position]:
    return [
        Position.from_data_api_response(item, default_wallet=default_wallet)
        for item in to_domain_list(raw, POSITION_CONTAINER_KEYS)
        if validate_position(item)
    ]


def classify_trade(activity: Activity) -> Optional[TradeCondition]:
    """Map an activity to the action to mirror, or None when unsupported.

    ``type == MERGE`` wins over any side; after that the side decides.
    """
    activity_type = (activity.type or "").upper()
    side = (activity.side or "").upper()

    if activity_type == "MERGE":
        return TradeCondition.MERGE
    if side == "MERGE":
        return TradeCondition.MERGE
    if side == "BUY":
        return TradeCondition.BUY
    if side == "SELL":
        return TradeCondition.SELL
    return None
