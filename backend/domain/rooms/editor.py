"""
Room editing operations

Every helper takes a room (or report) and returns a new copy; nothing is
mutated in place. After each change the cached derived fields (volume, airflow
values, particle average and ISO class, meetsCriteria) are recomputed through
the compliance engine so that stored documents never disagree with it.
"""

import uuid
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from domain.compliance import engine
from domain.models.qualification import (
    HvacReport,
    MeasurementRecord,
    Room,
    TestInstance,
    TestsData,
    TestType,
    TESTS_FIELD_BY_TYPE,
    record_model_for,
)
from services.error_types import (
    RecordNotFoundError,
    TestNotSelectedError,
    UnknownFieldError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Descriptive room fields a caller may change
ROOM_INFO_FIELDS = {
    "room_no", "room_name", "surface_area", "height",
    "test_mode", "flow_type", "room_class",
}


def instance_id(room_id: str, test_type: TestType, index: int) -> str:
    return f"{room_id}-{test_type.value}-{index}"


def _resolve_field(model, name: str) -> str:
    """Map a camelCase or snake_case name to the model's attribute name"""
    for attr, info in model.model_fields.items():
        if name == attr or name == info.alias:
            return attr
    raise UnknownFieldError(getattr(model, "__name__", str(model)), name)


def _resolve_room_field(name: str) -> str:
    attr = _resolve_field(Room, name)
    if attr == "volume":
        raise ValidationError("Room volume is derived from surface area and height",
                              errors=["volume"])
    if attr not in ROOM_INFO_FIELDS:
        raise UnknownFieldError("room", name)
    return attr


def _apply_changes(test_type: TestType, record: Optional[MeasurementRecord],
                   changes: Dict[str, Any]) -> MeasurementRecord:
    """Validate field names and merge raw values into a (new) record"""
    model = record_model_for(test_type)
    resolved = {}
    for name, value in changes.items():
        try:
            attr = _resolve_field(model, name)
        except UnknownFieldError:
            raise UnknownFieldError(test_type.value, name)
        if attr in model.derived_fields:
            raise ValidationError(f"Field '{name}' of '{test_type.value}' is derived and cannot be written",
                                  errors=[name])
        resolved[attr] = value

    base = record.model_dump() if record is not None else {}
    base.update(resolved)
    try:
        return model.model_validate(base)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid measurement for '{test_type.value}'",
                              errors=[err["msg"] for err in e.errors()])


def _set_test_record(tests: TestsData, test_type: TestType, record: Optional[MeasurementRecord]) -> TestsData:
    return tests.model_copy(update={TESTS_FIELD_BY_TYPE[test_type]: record})


def refresh_derived(room: Room) -> Room:
    """Recompute volume and every cached derived value of a room"""
    volume = engine.room_volume(room.surface_area, room.height)

    tests = room.tests
    for test_type in tests.present_types():
        refreshed = engine.refresh_record(test_type, tests.get(test_type), volume)
        tests = _set_test_record(tests, test_type, refreshed)

    instances = [
        instance.model_copy(update={"data": engine.refresh_record(instance.test_type, instance.data, volume)})
        for instance in room.test_instances
    ]

    return room.model_copy(update={"volume": volume, "tests": tests, "test_instances": instances})


def create_room(room_no: str = "", room_name: str = "", surface_area: float = 0.0,
                height: float = 0.0, room_id: Optional[str] = None, **info) -> Room:
    """New room with a generated id, derived volume and no tests selected"""
    room = Room(
        id=room_id or str(uuid.uuid4()),
        room_no=room_no,
        room_name=room_name,
        surface_area=surface_area,
        height=height,
        **info,
    )
    return refresh_derived(room)


def update_room_basic_info(room: Room, **changes) -> Room:
    """
    Update descriptive fields of a room.

    Volume and every derived airflow value are recomputed. Writing `volume`
    directly is rejected.
    """
    update = {_resolve_room_field(name): value for name, value in changes.items()}
    data = room.model_dump()
    data.update(update)
    try:
        room = Room.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid room information",
                              errors=[err["msg"] for err in e.errors()])
    return refresh_derived(room)


def set_selected_tests(room: Room, keys: Iterable[Any]) -> Room:
    """
    Replace the room's selection.

    Unknown keys fail before anything changes. Records, counts and instances of
    deselected types are removed; no default record is created for newly
    selected types.
    """
    selected: List[TestType] = []
    for key in keys:
        test_type = TestType.parse(key)
        if test_type not in selected:
            selected.append(test_type)

    tests = room.tests
    for test_type in tests.present_types():
        if test_type not in selected:
            tests = _set_test_record(tests, test_type, None)

    return room.model_copy(update={
        "selected_tests": selected,
        "tests": tests,
        "test_counts": {t: c for t, c in room.test_counts.items() if t in selected},
        "test_instances": [i for i in room.test_instances if i.test_type in selected],
    })


def toggle_test(room: Room, key: Any) -> Room:
    test_type = TestType.parse(key)
    if test_type in room.selected_tests:
        return set_selected_tests(room, [t for t in room.selected_tests if t != test_type])
    return set_selected_tests(room, list(room.selected_tests) + [test_type])


def select_all_tests(room: Room) -> Room:
    return set_selected_tests(room, list(TestType))


def clear_all_tests(room: Room) -> Room:
    return set_selected_tests(room, [])


def set_test_count(room: Room, key: Any, count: int) -> Room:
    """
    Set how many times a test type is performed in the room.

    A count of 0 or less deselects the type. Otherwise the type is selected and
    its instances are rebuilt with indices 0..count-1; instances whose index
    survives keep their data and device.
    """
    test_type = TestType.parse(key)
    if count <= 0:
        return set_selected_tests(room, [t for t in room.selected_tests if t != test_type])

    if test_type not in room.selected_tests:
        room = set_selected_tests(room, list(room.selected_tests) + [test_type])

    existing = {i.test_index: i for i in room.instances_of(test_type)}
    model = record_model_for(test_type)
    rebuilt = [
        existing.get(index) or TestInstance(
            id=instance_id(room.id, test_type, index),
            test_type=test_type,
            test_index=index,
            data=model(),
        )
        for index in range(count)
    ]
    others = [i for i in room.test_instances if i.test_type != test_type]
    counts = dict(room.test_counts)
    counts[test_type] = count

    return room.model_copy(update={"test_counts": counts, "test_instances": others + rebuilt})


def update_measurement(room: Room, key: Any, changes: Dict[str, Any]) -> Room:
    """
    Write raw fields of the room's single record of a test type.

    The type must be selected and every field must belong to its record; the
    cached verdict is recomputed afterwards.
    """
    test_type = TestType.parse(key)
    if test_type not in room.selected_tests:
        raise TestNotSelectedError(test_type.value, room.id)

    record = _apply_changes(test_type, room.tests.get(test_type), changes)
    volume = engine.room_volume(room.surface_area, room.height)
    record = engine.refresh_record(test_type, record, volume)
    return room.model_copy(update={"tests": _set_test_record(room.tests, test_type, record)})


def _find_instance(room: Room, inst_id: str) -> int:
    for position, instance in enumerate(room.test_instances):
        if instance.id == inst_id:
            return position
    raise RecordNotFoundError("Test instance", inst_id)


def update_instance_measurement(room: Room, inst_id: str, changes: Dict[str, Any]) -> Room:
    position = _find_instance(room, inst_id)
    instance = room.test_instances[position]
    record = _apply_changes(instance.test_type, instance.data, changes)
    volume = engine.room_volume(room.surface_area, room.height)
    record = engine.refresh_record(instance.test_type, record, volume)

    instances = list(room.test_instances)
    instances[position] = instance.model_copy(update={"data": record})
    return room.model_copy(update={"test_instances": instances})


def assign_instance_device(room: Room, inst_id: str, device_id: Optional[str],
                           device_name: Optional[str] = None) -> Room:
    """Record which measuring device was used for a test instance"""
    position = _find_instance(room, inst_id)
    instances = list(room.test_instances)
    instances[position] = instances[position].model_copy(
        update={"device_id": device_id, "device_name": device_name if device_id else None}
    )
    return room.model_copy(update={"test_instances": instances})


def consolidate_instances(room: Room) -> Room:
    """
    Fold test instances back into the room's single records.

    The last instance of each type becomes `tests[key]`. This is a display
    view for single-record consumers; compliance still uses every instance.
    """
    tests = room.tests
    for test_type in room.selected_tests:
        instances = room.instances_of(test_type)
        if instances:
            last = max(instances, key=lambda i: i.test_index)
            tests = _set_test_record(tests, test_type, last.data.model_copy())
    return room.model_copy(update={"tests": tests})


def validate_report_for_save(report: HvacReport) -> List[str]:
    """
    Check a report is complete enough to be saved as final.

    Returns:
        List of Turkish error messages, empty when the report is valid
    """
    errors: List[str] = []
    info = report.report_info

    if not info.hospital_name.strip():
        errors.append("Hastane adı gereklidir.")
    if not info.report_number.strip():
        errors.append("Rapor numarası gereklidir.")
    if not report.rooms:
        errors.append("En az bir oda eklenmelidir.")

    for position, room in enumerate(report.rooms, start=1):
        label = room.room_name or room.room_no or f"{position}. oda"
        if not room.room_name.strip():
            errors.append(f"{position}. oda için oda adı gereklidir.")
        if not room.room_no.strip():
            errors.append(f"{position}. oda için oda numarası gereklidir.")
        if not room.selected_tests:
            errors.append(f"{label}: en az bir test seçilmelidir.")
            continue
        for test_type in room.selected_tests:
            if engine.evaluate_test(room, test_type) is None:
                errors.append(f"{label}: {engine.TEST_NAMES[test_type]} testi için veri girilmemiş.")

    if errors:
        logger.info(f"Report {report.id} failed save validation with {len(errors)} error(s)")
    return errors
