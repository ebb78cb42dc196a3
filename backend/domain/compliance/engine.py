"""
Compliance Evaluation Engine

Single source of truth for cleanroom qualification verdicts:
- Unit converters (room volume, outlet flow rate, air change rate)
- Per-test validators against the regulatory thresholds
- ISO 14644-1 classification of the 0.5 µm particle count
- Room and report aggregation
- Summary builder consumed by the API and the document generators

Every function is pure. Verdicts are tri-state: True (pass), False (fail) and
None (not evaluated because a raw quantity is missing). Stored `meetsCriteria`
flags are never read here.
"""

import math
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import Field

from domain.models.qualification import (
    AirFlowDirection,
    AirflowData,
    CamelModel,
    HepaLeakage,
    HvacReport,
    MeasurementRecord,
    NoiseLevel,
    ParticleCount,
    PressureDifference,
    RecoveryTime,
    ReportInfo,
    Room,
    TemperatureHumidity,
    TestType,
)

logger = logging.getLogger(__name__)

# Regulatory thresholds
MIN_PRESSURE_PA = 6.0
MAX_HEPA_LEAKAGE_PCT = 0.01
MAX_RECOVERY_TIME_MIN = 25.0
TEMPERATURE_RANGE_C = (20.0, 24.0)
HUMIDITY_RANGE_PCT = (40.0, 60.0)
MAX_NOISE_LEQ_DB = 45.0
MIN_AIR_CHANGE_RATE = 20.0
MIN_SAMPLING_POINTS = 4

# ISO 14644-1 upper limits of the 0.5 µm count, first match wins
ISO_CLASS_LIMITS = [
    (3520, "5"),
    (35200, "6"),
    (352000, "7"),
]
ISO_CLASS_OVERFLOW = "8"
DEFAULT_TARGET_ISO_CLASS = "7"

COMPLIANT_LABEL = "UYGUNDUR"
NON_COMPLIANT_LABEL = "UYGUN DEĞİL"
NO_DATA_LABEL = "Veri yok"
REPORT_COMPLIANT_TEXT = "Sistem, referans standartlara UYGUNDUR."
REPORT_NON_COMPLIANT_TEXT = "Sistem, referans standartlara UYGUN DEĞİL."
REPORT_NO_DATA_TEXT = "Veri bulunamadı."

TEST_NAMES: Dict[TestType, str] = {
    TestType.AIRFLOW: "Hava Debisi",
    TestType.PRESSURE_DIFFERENCE: "Basınç Farkı",
    TestType.AIR_FLOW_DIRECTION: "Hava Akış Yönü",
    TestType.HEPA_LEAKAGE: "HEPA Sızdırmazlık",
    TestType.PARTICLE_COUNT: "Partikül Sayısı",
    TestType.RECOVERY_TIME: "Recovery Time",
    TestType.TEMPERATURE_HUMIDITY: "Sıcaklık & Nem",
    TestType.NOISE_LEVEL: "Gürültü Seviyesi",
}

DEFAULT_CRITERIA: Dict[TestType, str] = {
    TestType.AIRFLOW: "≥ 20 ACH",
    TestType.PRESSURE_DIFFERENCE: "≥ 6 Pa",
    TestType.AIR_FLOW_DIRECTION: "Temiz → Kirli",
    TestType.HEPA_LEAKAGE: "≤ %0.01",
    TestType.PARTICLE_COUNT: f"ISO Class {DEFAULT_TARGET_ISO_CLASS}",
    TestType.RECOVERY_TIME: "≤ 25 dk",
    TestType.TEMPERATURE_HUMIDITY: "20-24°C, 40-60%",
    TestType.NOISE_LEVEL: "≤ 45 dB",
}


def _round2(value: float) -> float:
    """Round half-up to two decimals"""
    return math.floor(value * 100 + 0.5) / 100


# ---------------------------------------------------------------------------
# Unit converters
# ---------------------------------------------------------------------------

def room_volume(surface_area: float, height: float) -> float:
    """Room volume in m³ from floor area (m²) and height (m)"""
    return _round2((surface_area or 0.0) * (height or 0.0))


def air_flow_rate_from_velocity(velocity: float, filter_width_mm: float, filter_height_mm: float) -> float:
    """Outlet flow rate in m³/h from face velocity (m/s) and filter size (mm)"""
    area_m2 = (filter_width_mm / 1000) * (filter_height_mm / 1000)
    return _round2(velocity * area_m2 * 3600)


def air_change_rate(total_flow_rate: float, volume: float) -> float:
    """Air changes per hour; 0 when the volume is 0 (cannot evaluate)"""
    if not volume:
        return 0.0
    return _round2(total_flow_rate / volume)


def sampling_point_count(area: float) -> int:
    """Minimum number of ISO 14644-1 sampling locations for a floor area"""
    return max(MIN_SAMPLING_POINTS, int(math.floor(math.sqrt(10 * area) + 0.5)))


def particle_average(readings: Sequence[float]) -> float:
    if not readings:
        return 0.0
    return sum(readings) / len(readings)


# ---------------------------------------------------------------------------
# Per-test validators
# ---------------------------------------------------------------------------

def validate_pressure(pressure: float) -> bool:
    return pressure >= MIN_PRESSURE_PA


def validate_hepa_leakage(leakage: float) -> bool:
    return leakage <= MAX_HEPA_LEAKAGE_PCT


def validate_recovery_time(duration: float) -> bool:
    return duration <= MAX_RECOVERY_TIME_MIN


def validate_temperature(temperature: float) -> bool:
    low, high = TEMPERATURE_RANGE_C
    return low <= temperature <= high


def validate_humidity(humidity: float) -> bool:
    low, high = HUMIDITY_RANGE_PCT
    return low <= humidity <= high


def validate_temp_humidity(temperature: float, humidity: float) -> bool:
    return validate_temperature(temperature) and validate_humidity(humidity)


def validate_noise(leq: float) -> bool:
    return leq <= MAX_NOISE_LEQ_DB


def validate_air_change_rate(ach: float) -> bool:
    return ach >= MIN_AIR_CHANGE_RATE


def validate_air_flow_direction(result: str) -> bool:
    """Observational test: passes only on the literal compliant result"""
    return result == COMPLIANT_LABEL


# ---------------------------------------------------------------------------
# ISO classifier
# ---------------------------------------------------------------------------

def classify_iso(count: float) -> str:
    """ISO 14644-1 class label ("5".."8") of a 0.5 µm particle count"""
    for limit, label in ISO_CLASS_LIMITS:
        if count <= limit:
            return label
    return ISO_CLASS_OVERFLOW


def iso_class_rank(label: str) -> int:
    return int(str(label).replace("ISO", "").strip())


def meets_iso_class(count: float, target_class: str = DEFAULT_TARGET_ISO_CLASS) -> bool:
    return iso_class_rank(classify_iso(count)) <= iso_class_rank(target_class)


# ---------------------------------------------------------------------------
# Raw quantity extraction
# ---------------------------------------------------------------------------

def outlet_flow_rate(record: AirflowData) -> Optional[float]:
    """Flow from face velocity when the filter is measured, else the entered flow"""
    if (record.speed is not None and record.filter_dimension_x and record.filter_dimension_y):
        return air_flow_rate_from_velocity(record.speed, record.filter_dimension_x, record.filter_dimension_y)
    return record.flow_rate


def room_supply_flow(record: AirflowData) -> Optional[float]:
    if record.total_flow_rate is not None:
        return record.total_flow_rate
    return outlet_flow_rate(record)


def effective_air_change_rate(record: AirflowData, volume: Optional[float]) -> Optional[float]:
    """Air change rate, or None when flow or volume is unknown"""
    flow = room_supply_flow(record)
    if flow is None or not volume:
        return None
    return air_change_rate(flow, volume)


def particle_count_value(record: ParticleCount) -> Optional[float]:
    """Count to classify: mean of raw readings when taken, else the single entry"""
    if record.particles05um:
        return particle_average(record.particles05um)
    return record.particle05


# ---------------------------------------------------------------------------
# Record evaluation (tri-state)
# ---------------------------------------------------------------------------

def _evaluate_airflow(record: AirflowData, volume: Optional[float]) -> Optional[bool]:
    ach = effective_air_change_rate(record, volume)
    return None if ach is None else validate_air_change_rate(ach)


def _evaluate_pressure(record: PressureDifference, volume: Optional[float]) -> Optional[bool]:
    return None if record.pressure is None else validate_pressure(record.pressure)


def _evaluate_direction(record: AirFlowDirection, volume: Optional[float]) -> Optional[bool]:
    if not record.result:
        return None
    return validate_air_flow_direction(record.result)


def _evaluate_hepa(record: HepaLeakage, volume: Optional[float]) -> Optional[bool]:
    return None if record.actual_leakage is None else validate_hepa_leakage(record.actual_leakage)


def _evaluate_particles(record: ParticleCount, volume: Optional[float]) -> Optional[bool]:
    count = particle_count_value(record)
    return None if count is None else meets_iso_class(count)


def _evaluate_recovery(record: RecoveryTime, volume: Optional[float]) -> Optional[bool]:
    return None if record.duration is None else validate_recovery_time(record.duration)


def _evaluate_climate(record: TemperatureHumidity, volume: Optional[float]) -> Optional[bool]:
    if record.temperature is None or record.humidity is None:
        return None
    return validate_temp_humidity(record.temperature, record.humidity)


def _evaluate_noise(record: NoiseLevel, volume: Optional[float]) -> Optional[bool]:
    return None if record.leq is None else validate_noise(record.leq)


_EVALUATORS: Dict[TestType, Callable[..., Optional[bool]]] = {
    TestType.AIRFLOW: _evaluate_airflow,
    TestType.PRESSURE_DIFFERENCE: _evaluate_pressure,
    TestType.AIR_FLOW_DIRECTION: _evaluate_direction,
    TestType.HEPA_LEAKAGE: _evaluate_hepa,
    TestType.PARTICLE_COUNT: _evaluate_particles,
    TestType.RECOVERY_TIME: _evaluate_recovery,
    TestType.TEMPERATURE_HUMIDITY: _evaluate_climate,
    TestType.NOISE_LEVEL: _evaluate_noise,
}


def evaluate_record(test_type: TestType, record: Optional[MeasurementRecord],
                    volume: Optional[float] = None) -> Optional[bool]:
    """
    Evaluate one measurement record from its raw quantities.

    Args:
        test_type: Test the record belongs to
        record: Measurement record, None when nothing was recorded
        volume: Room volume in m³ (only the airflow test uses it)

    Returns:
        True / False, or None when the record cannot be evaluated
    """
    if record is None:
        return None
    return _EVALUATORS[TestType.parse(test_type)](record, volume)


def refresh_record(test_type: TestType, record: MeasurementRecord,
                   volume: Optional[float] = None) -> MeasurementRecord:
    """Copy of `record` with every derived field recomputed from raw fields"""
    test_type = TestType.parse(test_type)
    updates = {"meets_criteria": evaluate_record(test_type, record, volume)}

    if test_type == TestType.AIRFLOW:
        if (record.speed is not None and record.filter_dimension_x and record.filter_dimension_y):
            updates["flow_rate"] = outlet_flow_rate(record)
        flow = room_supply_flow(record)
        updates["air_change_rate"] = None if flow is None else air_change_rate(flow, volume or 0.0)
    elif test_type == TestType.PARTICLE_COUNT:
        count = particle_count_value(record)
        updates["average"] = count
        updates["iso_class"] = None if count is None else classify_iso(count)

    return record.model_copy(update=updates)


# ---------------------------------------------------------------------------
# Room and report aggregation
# ---------------------------------------------------------------------------

def records_for(room: Room, test_type: TestType) -> List[MeasurementRecord]:
    """
    Records that decide a test in a room.

    Repeated test instances take precedence over the room's single record.
    """
    instances = room.instances_of(test_type)
    if instances:
        return [instance.data for instance in instances]
    record = room.tests.get(test_type)
    return [] if record is None else [record]


def evaluate_test(room: Room, test_type: TestType) -> Optional[bool]:
    """
    Verdict of one test type in a room; every instance must pass.

    Returns None when nothing was recorded or any record cannot be evaluated
    and none failed.
    """
    test_type = TestType.parse(test_type)
    volume = room_volume(room.surface_area, room.height)
    verdicts = [evaluate_record(test_type, record, volume) for record in records_for(room, test_type)]
    if not verdicts:
        return None
    if any(v is False for v in verdicts):
        return False
    if any(v is None for v in verdicts):
        return None
    return True


def evaluate_room(room: Room) -> bool:
    """
    Room compliance: AND over the selected tests.

    A selected test without an evaluable record fails, and a room with no
    selected test is non-compliant.
    """
    if not room.selected_tests:
        return False
    return all(evaluate_test(room, test_type) is True for test_type in room.selected_tests)


class ReportOutcome(str, Enum):
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    NO_DATA = "no_data"


def evaluate_report(rooms: Sequence[Room]) -> bool:
    if not rooms:
        return False
    return all(evaluate_room(room) for room in rooms)


def report_outcome(rooms: Sequence[Room]) -> ReportOutcome:
    if not rooms:
        return ReportOutcome.NO_DATA
    return ReportOutcome.COMPLIANT if evaluate_report(rooms) else ReportOutcome.NON_COMPLIANT


def final_assessment(rooms: Sequence[Room]) -> str:
    outcome = report_outcome(rooms)
    if outcome == ReportOutcome.NO_DATA:
        return REPORT_NO_DATA_TEXT
    if outcome == ReportOutcome.COMPLIANT:
        return REPORT_COMPLIANT_TEXT
    return REPORT_NON_COMPLIANT_TEXT


def room_verdict_label(compliant: bool) -> str:
    return COMPLIANT_LABEL if compliant else NON_COMPLIANT_LABEL


def verdict_label(verdict: Optional[bool]) -> str:
    if verdict is None:
        return NO_DATA_LABEL
    return room_verdict_label(verdict)


# ---------------------------------------------------------------------------
# Summary builder
# ---------------------------------------------------------------------------

def _fmt(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.4f}".rstrip("0").rstrip(".")


def display_value(test_type: TestType, record: Optional[MeasurementRecord],
                  volume: Optional[float] = None) -> str:
    """Human-readable measured value of a record"""
    if record is None:
        return NO_DATA_LABEL

    if test_type == TestType.AIRFLOW:
        flow = room_supply_flow(record)
        if flow is None:
            return NO_DATA_LABEL
        ach = effective_air_change_rate(record, volume)
        text = f"{_fmt(flow)} m³/h"
        return text if ach is None else f"{text} ({_fmt(ach)} ACH)"
    if test_type == TestType.PRESSURE_DIFFERENCE:
        return NO_DATA_LABEL if record.pressure is None else f"{_fmt(record.pressure)} Pa"
    if test_type == TestType.AIR_FLOW_DIRECTION:
        return record.observation or record.direction or "Gözlem"
    if test_type == TestType.HEPA_LEAKAGE:
        return NO_DATA_LABEL if record.actual_leakage is None else f"{_fmt(record.actual_leakage)}%"
    if test_type == TestType.PARTICLE_COUNT:
        count = particle_count_value(record)
        if count is None:
            return NO_DATA_LABEL
        return f"{_fmt(round(count, 2))} (ISO {classify_iso(count)})"
    if test_type == TestType.RECOVERY_TIME:
        return NO_DATA_LABEL if record.duration is None else f"{_fmt(record.duration)} dk"
    if test_type == TestType.TEMPERATURE_HUMIDITY:
        if record.temperature is None and record.humidity is None:
            return NO_DATA_LABEL
        temp = "-" if record.temperature is None else _fmt(record.temperature)
        hum = "-" if record.humidity is None else _fmt(record.humidity)
        return f"{temp}°C, {hum}%"
    if test_type == TestType.NOISE_LEVEL:
        return NO_DATA_LABEL if record.leq is None else f"{_fmt(record.leq)} dB"
    return NO_DATA_LABEL


def criteria_text(test_type: TestType, record: Optional[MeasurementRecord]) -> str:
    if test_type != TestType.PARTICLE_COUNT and record is not None and record.criteria:
        return record.criteria
    return DEFAULT_CRITERIA[test_type]


class InstanceSummary(CamelModel):
    instance_id: str
    test_index: int
    verdict: Optional[bool] = None
    display_value: str
    device_name: Optional[str] = None


class TestSummary(CamelModel):
    __test__ = False

    test_key: TestType
    test_name: str
    is_selected: bool
    has_data: bool
    verdict: Optional[bool] = None
    verdict_label: str
    display_value: str
    criteria: str
    instances: List[InstanceSummary] = Field(default_factory=list)

    def to_json(self):
        # verdict stays explicit: null means "not evaluated"
        return self.model_dump(by_alias=True, mode="json")


class RoomSummary(CamelModel):
    room_id: str
    room_no: str
    room_name: str
    surface_area: float
    height: float
    volume: float
    test_mode: str
    flow_type: str
    room_class: str
    sampling_points: int
    tests: List[TestSummary]
    overall_compliant: bool
    verdict_label: str
    selected_test_count: int
    passed_test_count: int

    def selected(self) -> List[TestSummary]:
        return [t for t in self.tests if t.is_selected]

    def to_json(self):
        return self.model_dump(by_alias=True, mode="json")


class ReportSummary(CamelModel):
    report_id: str
    report_info: ReportInfo
    rooms: List[RoomSummary]
    is_compliant: bool
    outcome: ReportOutcome
    assessment: str
    total_rooms: int
    compliant_rooms: int
    total_tests: int
    passed_tests: int
    compliance_rate: int

    def to_json(self):
        return self.model_dump(by_alias=True, mode="json")


def _summarize_test(room: Room, test_type: TestType, volume: float) -> TestSummary:
    records = records_for(room, test_type)
    has_data = bool(records)
    verdict = evaluate_test(room, test_type) if has_data else None

    instances = [
        InstanceSummary(
            instance_id=instance.id,
            test_index=instance.test_index,
            verdict=evaluate_record(test_type, instance.data, volume),
            display_value=display_value(test_type, instance.data, volume),
            device_name=instance.device_name,
        )
        for instance in room.instances_of(test_type)
    ]
    if instances:
        shown = " / ".join(i.display_value for i in instances)
    else:
        shown = display_value(test_type, records[0] if records else None, volume)

    return TestSummary(
        test_key=test_type,
        test_name=TEST_NAMES[test_type],
        is_selected=test_type in room.selected_tests,
        has_data=has_data,
        verdict=verdict,
        verdict_label=verdict_label(verdict),
        display_value=shown,
        criteria=criteria_text(test_type, records[-1] if records else None),
        instances=instances,
    )


def build_room_summary(room: Room) -> RoomSummary:
    """Per-test breakdown of a room over all eight test types"""
    volume = room_volume(room.surface_area, room.height)
    tests = [_summarize_test(room, test_type, volume) for test_type in TestType]
    selected = [t for t in tests if t.is_selected]
    passed = [t for t in selected if t.verdict is True]
    compliant = evaluate_room(room)

    return RoomSummary(
        room_id=room.id,
        room_no=room.room_no or "N/A",
        room_name=room.room_name or "Bilinmeyen Oda",
        surface_area=room.surface_area,
        height=room.height,
        volume=volume,
        test_mode=room.test_mode.value,
        flow_type=room.flow_type.value,
        room_class=room.room_class.value,
        sampling_points=sampling_point_count(room.surface_area),
        tests=tests,
        overall_compliant=compliant,
        verdict_label=room_verdict_label(compliant),
        selected_test_count=len(selected),
        passed_test_count=len(passed),
    )


def build_report_summary(report: HvacReport) -> ReportSummary:
    """Room summaries plus the overall verdict and totals of a report"""
    rooms = [build_room_summary(room) for room in report.rooms]
    total_tests = sum(r.selected_test_count for r in rooms)
    passed_tests = sum(r.passed_test_count for r in rooms)
    rate = int(math.floor(passed_tests / total_tests * 100 + 0.5)) if total_tests else 0
    outcome = report_outcome(report.rooms)

    logger.debug(f"Report {report.id}: {outcome.value}, {passed_tests}/{total_tests} tests passed")

    return ReportSummary(
        report_id=report.id,
        report_info=report.report_info,
        rooms=rooms,
        is_compliant=outcome == ReportOutcome.COMPLIANT,
        outcome=outcome,
        assessment=final_assessment(report.rooms),
        total_rooms=len(rooms),
        compliant_rooms=sum(1 for r in rooms if r.overall_compliant),
        total_tests=total_tests,
        passed_tests=passed_tests,
        compliance_rate=rate,
    )
