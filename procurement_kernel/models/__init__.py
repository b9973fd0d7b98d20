"""Kernel ORM models shared by every procurement module."""

from procurement_kernel.models.activity import ActivityRecord

__all__ = ["ActivityRecord"]
