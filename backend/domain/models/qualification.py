"""
Pydantic models for HVAC performance-qualification reports

Field names are snake_case in Python and camelCase on the wire, so persisted
documents keep the `hvac-reports` layout. Every raw measurement is optional:
an absent value means "not measured" and is never replaced by 0.
"""

from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Type

from pydantic import BaseModel, Field, SerializeAsAny, field_validator, model_validator
from pydantic.alias_generators import to_camel

from services.error_types import UnknownTestTypeError


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class TestType(str, Enum):
    """The eight qualification tests a room can be subjected to"""
    __test__ = False

    AIRFLOW = "airflowData"
    PRESSURE_DIFFERENCE = "pressureDifference"
    AIR_FLOW_DIRECTION = "airFlowDirection"
    HEPA_LEAKAGE = "hepaLeakage"
    PARTICLE_COUNT = "particleCount"
    RECOVERY_TIME = "recoveryTime"
    TEMPERATURE_HUMIDITY = "temperatureHumidity"
    NOISE_LEVEL = "noiseLevel"

    @classmethod
    def parse(cls, key: Any) -> "TestType":
        """Resolve a test key, failing with the offending key named"""
        if isinstance(key, cls):
            return key
        try:
            return cls(key)
        except ValueError:
            raise UnknownTestTypeError(str(key))


class TestMode(str, Enum):
    AT_REST = "At Rest"
    IN_OPERATION = "In Operation"


class FlowType(str, Enum):
    TURBULENCE = "Turbulence"
    LAMINAR = "Laminar"
    UNIDIRECTIONAL = "Unidirectional"


class RoomClass(str, Enum):
    CLASS_IB = "Class IB"
    CLASS_II = "Class II"
    INTENSIVE_CARE = "Intensive Care"
    OTHER = "Other"


# ---------------------------------------------------------------------------
# Measurement records
# ---------------------------------------------------------------------------

class MeasurementRecord(CamelModel):
    """
    Common part of every measurement record.

    `meets_criteria` is a cached verdict. It is recomputed from the raw fields
    on every write and is never read by the compliance engine.
    """
    criteria: Optional[str] = Field(None, description="Stored criteria description")
    meets_criteria: Optional[bool] = Field(None, description="Cached verdict")

    # Fields recomputed from raw quantities; callers cannot write them
    derived_fields: ClassVar[FrozenSet[str]] = frozenset({"meets_criteria"})

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Form inputs send empty strings for untouched fields"""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class AirflowData(MeasurementRecord):
    speed: Optional[float] = Field(None, description="Air velocity at the filter face (m/s)")
    filter_dimension_x: Optional[float] = Field(None, description="Filter width (mm)")
    filter_dimension_y: Optional[float] = Field(None, description="Filter height (mm)")
    flow_rate: Optional[float] = Field(None, description="Flow rate of one outlet (m³/h)")
    total_flow_rate: Optional[float] = Field(None, description="Total supply flow of the room (m³/h)")
    air_change_rate: Optional[float] = Field(None, description="Air changes per hour (derived)")

    derived_fields: ClassVar[FrozenSet[str]] = frozenset({"meets_criteria", "air_change_rate"})


class PressureDifference(MeasurementRecord):
    pressure: Optional[float] = Field(None, description="Pressure difference (Pa)")
    reference_area: Optional[str] = Field(None, description="Adjacent reference area")


class AirFlowDirection(MeasurementRecord):
    direction: Optional[str] = None
    result: Optional[str] = Field(None, description="Observed result, 'UYGUNDUR' when compliant")
    observation: Optional[str] = None


class HepaLeakage(MeasurementRecord):
    max_leakage: Optional[float] = Field(None, description="Maximum permitted leakage (%)")
    actual_leakage: Optional[float] = Field(None, description="Measured leakage (%)")


class ParticleCount(MeasurementRecord):
    particle05: Optional[float] = Field(None, description="0.5 µm particle count")
    particle5: Optional[float] = Field(None, description="5 µm particle count")
    particles05um: List[float] = Field(default_factory=list, alias="particles05um",
                                       description="Raw 0.5 µm readings")
    average: Optional[float] = Field(None, description="Evaluated 0.5 µm count (derived)")
    iso_class: Optional[str] = Field(None, description="ISO 14644-1 class (derived)")

    derived_fields: ClassVar[FrozenSet[str]] = frozenset({"meets_criteria", "average", "iso_class"})

    @field_validator("particles05um", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return [] if v is None or v == "" else v


class RecoveryTime(MeasurementRecord):
    duration: Optional[float] = Field(None, description="Recovery time (minutes)")


class TemperatureHumidity(MeasurementRecord):
    temperature: Optional[float] = Field(None, description="Temperature (°C)")
    humidity: Optional[float] = Field(None, description="Relative humidity (%)")


class NoiseLevel(MeasurementRecord):
    leq: Optional[float] = Field(None, description="Equivalent continuous sound level (dB)")
    background_noise: Optional[float] = Field(None, description="Background noise (dB)")
    duration: Optional[float] = None
    location: Optional[str] = None
    frequency: Optional[str] = None


RECORD_MODELS: Dict[TestType, Type[MeasurementRecord]] = {
    TestType.AIRFLOW: AirflowData,
    TestType.PRESSURE_DIFFERENCE: PressureDifference,
    TestType.AIR_FLOW_DIRECTION: AirFlowDirection,
    TestType.HEPA_LEAKAGE: HepaLeakage,
    TestType.PARTICLE_COUNT: ParticleCount,
    TestType.RECOVERY_TIME: RecoveryTime,
    TestType.TEMPERATURE_HUMIDITY: TemperatureHumidity,
    TestType.NOISE_LEVEL: NoiseLevel,
}

# TestsData attribute holding each test type's record
TESTS_FIELD_BY_TYPE: Dict[TestType, str] = {
    TestType.AIRFLOW: "airflow_data",
    TestType.PRESSURE_DIFFERENCE: "pressure_difference",
    TestType.AIR_FLOW_DIRECTION: "air_flow_direction",
    TestType.HEPA_LEAKAGE: "hepa_leakage",
    TestType.PARTICLE_COUNT: "particle_count",
    TestType.RECOVERY_TIME: "recovery_time",
    TestType.TEMPERATURE_HUMIDITY: "temperature_humidity",
    TestType.NOISE_LEVEL: "noise_level",
}


def record_model_for(test_type: Any) -> Type[MeasurementRecord]:
    return RECORD_MODELS[TestType.parse(test_type)]


class TestsData(CamelModel):
    """The single "current" record of each test type in a room"""
    __test__ = False

    airflow_data: Optional[AirflowData] = None
    pressure_difference: Optional[PressureDifference] = None
    air_flow_direction: Optional[AirFlowDirection] = None
    hepa_leakage: Optional[HepaLeakage] = None
    particle_count: Optional[ParticleCount] = None
    recovery_time: Optional[RecoveryTime] = None
    temperature_humidity: Optional[TemperatureHumidity] = None
    noise_level: Optional[NoiseLevel] = None

    def get(self, test_type: TestType) -> Optional[MeasurementRecord]:
        return getattr(self, TESTS_FIELD_BY_TYPE[test_type])

    def present_types(self) -> List[TestType]:
        return [t for t in TestType if self.get(t) is not None]


class TestInstance(CamelModel):
    """One repetition of a selected test type in a room"""
    __test__ = False

    id: str
    test_type: TestType
    test_index: int = 0
    data: SerializeAsAny[MeasurementRecord]
    device_id: Optional[str] = None
    device_name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def parse_typed_data(cls, values):
        """Parse `data` with the record model of the instance's test type"""
        if not isinstance(values, dict):
            return values
        raw_type = values.get("testType", values.get("test_type"))
        model = record_model_for(raw_type)
        data = values.get("data")
        if data is None or isinstance(data, dict):
            values = {**values, "data": model.model_validate(data or {})}
        return values


# ---------------------------------------------------------------------------
# Rooms and reports
# ---------------------------------------------------------------------------

class Room(CamelModel):
    """
    A cleanroom under test.

    `volume` is derived from surface area and height; the editing helpers in
    `domain.rooms.editor` keep it current and the engine recomputes it itself.
    """
    id: str
    room_no: str = ""
    room_name: str = ""
    surface_area: float = Field(0.0, description="Floor area (m²)")
    height: float = Field(0.0, description="Ceiling height (m)")
    volume: float = Field(0.0, description="Derived room volume (m³)")
    test_mode: TestMode = TestMode.AT_REST
    flow_type: FlowType = FlowType.TURBULENCE
    room_class: RoomClass = RoomClass.CLASS_II
    selected_tests: List[TestType] = Field(default_factory=list)
    test_counts: Dict[TestType, int] = Field(default_factory=dict)
    test_instances: List[TestInstance] = Field(default_factory=list)
    tests: TestsData = Field(default_factory=TestsData)

    @field_validator("surface_area", "height", mode="before")
    @classmethod
    def blank_dimension(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0.0
        return v

    @field_validator("selected_tests", mode="before")
    @classmethod
    def parse_selection(cls, v):
        if v is None:
            return []
        selected: List[TestType] = []
        for key in v:
            test_type = TestType.parse(key)
            if test_type not in selected:
                selected.append(test_type)
        return selected

    @field_validator("test_counts", mode="before")
    @classmethod
    def parse_counts(cls, v):
        if v is None:
            return {}
        return {TestType.parse(key): count for key, count in v.items()}

    @field_validator("tests", mode="before")
    @classmethod
    def none_tests(cls, v):
        return {} if v is None else v

    def instances_of(self, test_type: TestType) -> List[TestInstance]:
        return [i for i in self.test_instances if i.test_type == test_type]


class ReportInfo(CamelModel):
    hospital_name: str = ""
    report_number: str = ""
    measurement_date: str = ""
    tester_name: str = ""
    report_prepared_by: str = ""
    approved_by: str = ""
    organization_name: str = ""
    logo: Optional[str] = None
    seal: Optional[str] = None


class HvacReport(CamelModel):
    """A qualification report: header information plus its rooms"""
    id: str
    report_info: ReportInfo = Field(default_factory=ReportInfo)
    rooms: List[Room] = Field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def find_room(self, room_id: str) -> Optional[Room]:
        return next((room for room in self.rooms if room.id == room_id), None)
