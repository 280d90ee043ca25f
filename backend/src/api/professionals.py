# pyright: reportMissingTypeStubs=false
"""
Professional dashboard API endpoints.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.responses import envelope
from auth.dependencies import require_professional, UserContext
from core.database import get_db
from services.patient_service import PatientService

router = APIRouter()


@router.get("/me/statistics", summary="Patient counters for the caller")
async def get_my_statistics(
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional)
) -> Dict[str, Any]:
    """Counts are computed from the patients table on every call."""
    assert current_user.professional_id is not None
    return envelope(data=PatientService.get_professional_statistics(db, current_user.professional_id))
