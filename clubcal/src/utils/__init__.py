"""
Utility modules for the ClubCal recurrence engine.

- time_utils: UTC normalization of timestamps
- logging_config: Structured logging setup
"""

from clubcal.src.utils.time_utils import utc_now, to_utc

__all__ = [
    "utc_now",
    "to_utc",
]
