"""
Measuring devices and their calibration records

Devices are the instruments used for qualification tests (anemometers,
particle counters, ...). Stored under `calimed_devices` and
`calimed_calibrations` in the JSON document store.
"""

import uuid
import logging
from datetime import date
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from domain.models.qualification import CamelModel, HvacReport
from services.error_types import PersistenceError, RecordNotFoundError, ValidationError
from services.report_store import JsonDocumentStore

logger = logging.getLogger(__name__)

DEVICES_KEY = "calimed_devices"
CALIBRATIONS_KEY = "calimed_calibrations"


class DeviceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class CalibrationType(str, Enum):
    ROUTINE = "routine"
    REPAIR = "repair"
    VALIDATION = "validation"
    VERIFICATION = "verification"


class CalibrationResult(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    CONDITIONAL = "conditional"


class StoredRecord(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class Device(StoredRecord):
    device_name: str
    device_type: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    department: Optional[str] = None
    purchase_date: Optional[date] = None
    last_calibration_date: Optional[date] = None
    next_calibration_date: Optional[date] = None
    status: DeviceStatus = DeviceStatus.ACTIVE
    notes: Optional[str] = None


class EnvironmentalConditions(CamelModel):
    temperature: Optional[str] = None
    humidity: Optional[str] = None
    pressure: Optional[str] = None


class CalibrationRecord(StoredRecord):
    device_id: str
    device_name: Optional[str] = None
    calibration_date: date
    next_calibration_date: Optional[date] = None
    technician_id: Optional[str] = None
    technician_name: Optional[str] = None
    calibration_type: CalibrationType = CalibrationType.ROUTINE
    result: CalibrationResult = CalibrationResult.PASSED
    certificate_number: Optional[str] = None
    standards_used: Optional[str] = None
    environmental_conditions: Optional[EnvironmentalConditions] = None
    measurements: Optional[str] = None
    notes: Optional[str] = None


class DueDevice(CamelModel):
    device: Device
    days_left: int

    @property
    def overdue(self) -> bool:
        return self.days_left < 0


R = TypeVar("R", bound=StoredRecord)


class JsonRecordRepository(Generic[R]):
    """List/get/add/update/delete over one JSON list of records"""

    key: str = ""
    model: Type[StoredRecord] = StoredRecord
    kind: str = "Record"

    def __init__(self, store: JsonDocumentStore):
        self.store = store

    def _load(self) -> List[R]:
        try:
            return [self.model.model_validate(item) for item in self.store.read(self.key, [])]
        except PydanticValidationError as e:
            raise PersistenceError(f"Stored {self.key} are malformed: {e}",
                                   user_message="Kayıtlı veriler okunamadı.", details={'key': self.key})

    def _dump(self, records: List[R]) -> None:
        self.store.write(self.key, [r.to_json() for r in records])

    def list(self) -> List[R]:
        return self._load()

    def get(self, record_id: str) -> R:
        for record in self._load():
            if record.id == record_id:
                return record
        raise RecordNotFoundError(self.kind, record_id)

    def add(self, record: R) -> R:
        records = self._load()
        if any(r.id == record.id for r in records):
            raise ValidationError(f"{self.kind} already exists: {record.id}", errors=["id"])
        records.append(record)
        self._dump(records)
        logger.info(f"Added {self.kind.lower()} {record.id}")
        return record

    def update(self, record_id: str, changes: Dict[str, Any]) -> R:
        """Partial update; `id` cannot be changed"""
        records = self._load()
        for position, record in enumerate(records):
            if record.id == record_id:
                data = record.model_dump()
                data.update(changes)
                data["id"] = record_id
                try:
                    updated = self.model.model_validate(data)
                except PydanticValidationError as e:
                    raise ValidationError(f"Invalid {self.kind.lower()} update",
                                          errors=[err["msg"] for err in e.errors()])
                records[position] = updated
                self._dump(records)
                return updated
        raise RecordNotFoundError(self.kind, record_id)

    def delete(self, record_id: str) -> None:
        records = self._load()
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            raise RecordNotFoundError(self.kind, record_id)
        self._dump(remaining)
        logger.info(f"Deleted {self.kind.lower()} {record_id}")


class DeviceRepository(JsonRecordRepository[Device]):
    key = DEVICES_KEY
    model = Device
    kind = "Device"


class CalibrationRepository(JsonRecordRepository[CalibrationRecord]):
    key = CALIBRATIONS_KEY
    model = CalibrationRecord
    kind = "Calibration"

    def __init__(self, store: JsonDocumentStore, devices: DeviceRepository):
        super().__init__(store)
        self.devices = devices

    def for_device(self, device_id: str) -> List[CalibrationRecord]:
        records = [r for r in self._load() if r.device_id == device_id]
        return sorted(records, key=lambda r: r.calibration_date, reverse=True)

    def record_calibration(self, record: CalibrationRecord) -> CalibrationRecord:
        """
        Store a calibration and move the device's calibration dates forward.

        The device must exist; its name is copied onto the record when missing.
        """
        device = self.devices.get(record.device_id)
        if not record.device_name:
            record = record.model_copy(update={"device_name": device.device_name})
        record = self.add(record)

        if device.last_calibration_date is None or record.calibration_date >= device.last_calibration_date:
            self.devices.update(device.id, {
                "last_calibration_date": record.calibration_date,
                "next_calibration_date": record.next_calibration_date,
            })
        return record


def devices_due_for_calibration(devices: List[Device], today: date, days: int = 30) -> List[DueDevice]:
    """
    Devices whose next calibration falls within `days` of `today`.

    Overdue devices (negative days left) are included and come first; retired
    devices and devices without a next date are skipped.
    """
    due = []
    for device in devices:
        if device.status == DeviceStatus.RETIRED or device.next_calibration_date is None:
            continue
        days_left = (device.next_calibration_date - today).days
        if days_left <= days:
            due.append(DueDevice(device=device, days_left=days_left))
    return sorted(due, key=lambda d: d.days_left)


def devices_used_in_report(report: HvacReport, devices: List[Device]) -> List[Device]:
    """Devices referenced by any test instance of the report, in device order"""
    used = {
        instance.device_id
        for room in report.rooms
        for instance in room.test_instances
        if instance.device_id
    }
    return [device for device in devices if device.id in used]
