"""
Shared types for availability-related functionality.

This module contains shared data classes used by the slot resolver and
the availability API.
"""

from dataclasses import dataclass


@dataclass
class SlotData:
    """
    A single bookable time label within a day for one professional.

    available is False when an active appointment (reserved, scheduled or
    confirmed) already holds the label.
    """
    time: str  # Format: "HH:MM"
    available: bool
    professional_id: int

    def to_dict(self) -> dict[str, str | int | bool]:
        """Convert to the camelCase shape returned by the API."""
        return {
            "time": self.time,
            "available": self.available,
            "professionalId": self.professional_id,
        }
