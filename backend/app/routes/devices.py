import logging
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Response

from app.database import get_calibration_repository, get_device_repository
from services.device_store import (
    CalibrationRecord,
    CalibrationRepository,
    Device,
    DeviceRepository,
    devices_due_for_calibration,
)

logger = logging.getLogger(__name__)
router = APIRouter()
calibrations_router = APIRouter()


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------

@router.get("")
async def list_devices(repo: DeviceRepository = Depends(get_device_repository)):
    return [device.to_json() for device in repo.list()]


@router.get("/due")
async def list_due_devices(days: int = Query(30, ge=0),
                           today: Optional[date] = None,
                           repo: DeviceRepository = Depends(get_device_repository)):
    """Devices whose next calibration is within `days` (overdue first)"""
    due = devices_due_for_calibration(repo.list(), today or date.today(), days)
    return [item.to_json() for item in due]


@router.post("", status_code=201)
async def create_device(device: Device, repo: DeviceRepository = Depends(get_device_repository)):
    return repo.add(device).to_json()


@router.get("/{device_id}")
async def get_device(device_id: str, repo: DeviceRepository = Depends(get_device_repository)):
    return repo.get(device_id).to_json()


@router.patch("/{device_id}")
async def update_device(device_id: str, changes: Dict[str, Any] = Body(...),
                        repo: DeviceRepository = Depends(get_device_repository)):
    return repo.update(device_id, _snake_case(Device, changes)).to_json()


@router.delete("/{device_id}", status_code=204)
async def delete_device(device_id: str, repo: DeviceRepository = Depends(get_device_repository)):
    repo.delete(device_id)
    return Response(status_code=204)


@router.get("/{device_id}/calibrations")
async def list_device_calibrations(device_id: str,
                                   devices: DeviceRepository = Depends(get_device_repository),
                                   calibrations: CalibrationRepository = Depends(get_calibration_repository)):
    devices.get(device_id)
    return [record.to_json() for record in calibrations.for_device(device_id)]


# ---------------------------------------------------------------------------
# Calibrations
# ---------------------------------------------------------------------------

@calibrations_router.get("")
async def list_calibrations(repo: CalibrationRepository = Depends(get_calibration_repository)):
    return [record.to_json() for record in repo.list()]


@calibrations_router.post("", status_code=201)
async def record_calibration(record: CalibrationRecord,
                             repo: CalibrationRepository = Depends(get_calibration_repository)):
    """Store a calibration and move the device's calibration dates forward"""
    saved = repo.record_calibration(record)
    logger.info(f"Recorded calibration {saved.id} for device {saved.device_id}")
    return saved.to_json()


@calibrations_router.get("/{calibration_id}")
async def get_calibration(calibration_id: str, repo: CalibrationRepository = Depends(get_calibration_repository)):
    return repo.get(calibration_id).to_json()


@calibrations_router.patch("/{calibration_id}")
async def update_calibration(calibration_id: str, changes: Dict[str, Any] = Body(...),
                             repo: CalibrationRepository = Depends(get_calibration_repository)):
    return repo.update(calibration_id, _snake_case(CalibrationRecord, changes)).to_json()


@calibrations_router.delete("/{calibration_id}", status_code=204)
async def delete_calibration(calibration_id: str,
                             repo: CalibrationRepository = Depends(get_calibration_repository)):
    repo.delete(calibration_id)
    return Response(status_code=204)


def _snake_case(model, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Map camelCase request keys to attribute names; unknown keys are dropped"""
    by_alias: Dict[str, str] = {}
    for attr, info in model.model_fields.items():
        by_alias[attr] = attr
        if info.alias:
            by_alias[info.alias] = attr
    return {by_alias[key]: value for key, value in changes.items() if key in by_alias}
