# pyright: reportMissingTypeStubs=false
"""
Weekly availability API endpoints.

The body of PUT is the schedule itself, e.g.
{"1": ["09:00", "09:30"], "3": ["14:00"]}, keyed 0=Sunday .. 6=Saturday.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.orm import Session

from auth.dependencies import require_professional, UserContext
from core.database import get_db
from services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", summary="Get the caller's weekly schedule")
async def get_availability(
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional)
) -> Dict[str, Any]:
    """
    Get the professional's weekly schedule.

    Professionals who never saved a schedule get the default Monday-Friday
    template; nothing is stored by this call.
    """
    assert current_user.professional_id is not None
    schedule = AvailabilityService.get_schedule(db, current_user.professional_id)
    return {"success": True, "data": schedule}


@router.put("", summary="Replace the caller's weekly schedule")
async def update_availability(
    slots: Dict[str, List[str]] = Body(...),
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional)
) -> Dict[str, Any]:
    assert current_user.professional_id is not None
    try:
        schedule = AvailabilityService.replace_schedule(db, current_user.professional_id, slots)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update schedule for professional {current_user.professional_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error al actualizar disponibilidad"
        )
    return {"success": True, "message": "Disponibilidad actualizada", "data": schedule}
