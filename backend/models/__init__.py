from .activity import Activity, Position, TradeCondition

__all__ = [
    "Activity",
    "Position",
    "TradeCondition",
]
