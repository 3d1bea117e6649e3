from .logger import setup_logging, get_logger
from .retry import RetryConfig, RetryableClient
from .cycle_runner import CycleRunner
from .validation import validate_eth_address

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",

    # Retry
    "RetryConfig",
    "RetryableClient",

    # Loops
    "CycleRunner",

    # Validation
    "validate_eth_address",
]
