# Package initialization
# Import all models to ensure relationships are properly established
from .user import User
from .professional import Professional
from .patient import Patient
from .diary_note import DiaryNote
from .schedule_template import ScheduleTemplate
from .appointment import Appointment
from .invitation import Invitation, InvitationLog

__all__ = [
    "User",
    "Professional",
    "Patient",
    "DiaryNote",
    "ScheduleTemplate",
    "Appointment",
    "Invitation",
    "InvitationLog",
]
