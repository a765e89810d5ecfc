"""
Model mixins for shared functionality across entities.
"""

from clubcal.src.models.mixins.guid import GuidMixin, UUIDType

__all__ = ["GuidMixin", "UUIDType"]
