import logging
from typing import Any, Dict

from fastapi import APIRouter, Body
from pydantic import ValidationError as PydanticValidationError

from domain.compliance import engine
from domain.models.qualification import Room
from domain.rooms import editor
from services.error_types import ValidationError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/room")
async def evaluate_room(payload: Dict[str, Any] = Body(...)):
    """
    Evaluate a room payload without storing it.

    Stored `meetsCriteria` flags in the payload are ignored; every verdict is
    recomputed from the raw measurements.
    """
    try:
        room = Room.model_validate({"id": "adhoc", **payload})
    except PydanticValidationError as e:
        raise ValidationError("Invalid room payload", errors=[err["msg"] for err in e.errors()])

    summary = engine.build_room_summary(editor.refresh_derived(room))
    logger.debug(f"Evaluated ad-hoc room: {summary.verdict_label}")
    return summary.to_json()
