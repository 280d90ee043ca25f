"""
Shared type definitions for the therapy practice backend.

This module contains dataclasses and types that are used across multiple services.
"""

from shared_types.availability import SlotData
from shared_types.delivery import DeliveryResult, MessageContent

__all__ = ["SlotData", "DeliveryResult", "MessageContent"]
