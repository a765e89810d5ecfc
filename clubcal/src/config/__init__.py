"""
Configuration module for the ClubCal recurrence engine.
"""

from clubcal.src.config.settings import RecurrenceSettings, get_settings

__all__ = [
    "RecurrenceSettings",
    "get_settings",
]
