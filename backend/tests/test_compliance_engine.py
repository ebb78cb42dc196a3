"""
Tests for the compliance evaluation engine: converters, validators, ISO
classification, room/report aggregation and the summary builder.
"""
import pytest

from domain.compliance import engine
from domain.compliance.engine import ReportOutcome
from domain.rooms import editor
from domain.models.qualification import (
    AirFlowDirection,
    AirflowData,
    HepaLeakage,
    ParticleCount,
    PressureDifference,
    Room,
    TestType,
)
from services.error_types import UnknownTestTypeError

from conftest import make_report, make_room


class TestUnitConverters:
    """Room volume, outlet flow, air change rate, sampling points"""

    def test_room_volume(self):
        assert engine.room_volume(14, 3) == 42.0
        assert engine.room_volume(12.345, 2.7) == 33.33

    def test_flow_rate_from_velocity(self):
        # 0.45 m/s through a 610x610 mm filter
        assert engine.air_flow_rate_from_velocity(0.45, 610, 610) == 602.8

    def test_air_change_rate(self):
        assert engine.air_change_rate(500, 42) == 11.9
        assert engine.air_change_rate(1200, 37.5) == 32.0

    def test_air_change_rate_zero_volume_is_sentinel(self):
        assert engine.air_change_rate(500, 0) == 0

    @pytest.mark.parametrize("area,expected", [
        (0, 4),
        (1, 4),
        (2, 4),
        (10, 10),
        (50, 22),
    ])
    def test_sampling_point_count(self, area, expected):
        assert engine.sampling_point_count(area) == expected

    def test_particle_average(self):
        assert engine.particle_average([]) == 0
        assert engine.particle_average([1000, 2000, 3000]) == 2000


class TestValidators:
    """Threshold rules, including boundaries"""

    @pytest.mark.parametrize("pressure,expected", [
        (6, True), (6.0, True), (15, True), (5.99, False), (0, False), (-3, False),
    ])
    def test_pressure(self, pressure, expected):
        assert engine.validate_pressure(pressure) is expected

    @pytest.mark.parametrize("leakage,expected", [
        (0, True), (0.005, True), (0.01, True), (0.0101, False), (1, False),
    ])
    def test_hepa_leakage(self, leakage, expected):
        assert engine.validate_hepa_leakage(leakage) is expected

    @pytest.mark.parametrize("duration,expected", [
        (0, True), (25, True), (25.01, False), (40, False),
    ])
    def test_recovery_time(self, duration, expected):
        assert engine.validate_recovery_time(duration) is expected

    @pytest.mark.parametrize("temperature,humidity,expected", [
        (20, 40, True),
        (24, 60, True),
        (22, 50, True),
        (19.9, 50, False),
        (24.1, 50, False),
        (22, 39.9, False),
        (22, 60.1, False),
        (30, 80, False),
    ])
    def test_temp_humidity(self, temperature, humidity, expected):
        assert engine.validate_temp_humidity(temperature, humidity) is expected

    @pytest.mark.parametrize("leq,expected", [(30, True), (45, True), (45.1, False)])
    def test_noise(self, leq, expected):
        assert engine.validate_noise(leq) is expected

    @pytest.mark.parametrize("ach,expected", [(20, True), (35.5, True), (19.99, False), (0, False)])
    def test_air_change_rate(self, ach, expected):
        assert engine.validate_air_change_rate(ach) is expected

    @pytest.mark.parametrize("result,expected", [
        ("UYGUNDUR", True),
        ("UYGUN DEĞİL", False),
        ("uygundur", False),
        ("", False),
    ])
    def test_air_flow_direction(self, result, expected):
        assert engine.validate_air_flow_direction(result) is expected


class TestIsoClassifier:

    @pytest.mark.parametrize("count,label", [
        (0, "5"),
        (3000, "5"),
        (3520, "5"),
        (3521, "6"),
        (35200, "6"),
        (35201, "7"),
        (352000, "7"),
        (352001, "8"),
        (400000, "8"),
    ])
    def test_breakpoints(self, count, label):
        assert engine.classify_iso(count) == label

    def test_classification_is_monotonic(self):
        counts = [0, 10, 3519, 3520, 3521, 20000, 35200, 35201, 100000, 352000, 352001, 10 ** 7]
        ranks = [engine.iso_class_rank(engine.classify_iso(c)) for c in counts]
        assert ranks == sorted(ranks)

    def test_meets_iso_class_default_target(self):
        assert engine.meets_iso_class(352000) is True
        assert engine.meets_iso_class(352001) is False

    def test_meets_stricter_target(self):
        assert engine.meets_iso_class(20000, target_class="6") is True
        assert engine.meets_iso_class(40000, target_class="6") is False


class TestRecordEvaluation:
    """Tri-state verdicts from raw quantities"""

    def test_missing_pressure_is_not_evaluated(self):
        assert engine.evaluate_record(TestType.PRESSURE_DIFFERENCE, PressureDifference()) is None

    def test_missing_record_is_not_evaluated(self):
        assert engine.evaluate_record(TestType.HEPA_LEAKAGE, None) is None

    def test_max_leakage_alone_does_not_pass(self):
        record = HepaLeakage(max_leakage=0.01)
        assert engine.evaluate_record(TestType.HEPA_LEAKAGE, record) is None

    def test_stored_flag_is_ignored(self):
        record = PressureDifference(pressure=2, meets_criteria=True)
        assert engine.evaluate_record(TestType.PRESSURE_DIFFERENCE, record) is False

    def test_airflow_zero_volume_is_not_evaluated(self):
        record = AirflowData(total_flow_rate=1000)
        assert engine.evaluate_record(TestType.AIRFLOW, record, 0) is None

    def test_airflow_from_velocity(self):
        # 602.8 m³/h into 20 m³ -> 30.14 ACH
        record = AirflowData(speed=0.45, filter_dimension_x=610, filter_dimension_y=610)
        assert engine.evaluate_record(TestType.AIRFLOW, record, 20) is True

    def test_particle_readings_are_averaged(self):
        record = ParticleCount(particle05=1000, particles05um=[300000, 500000])
        assert engine.particle_count_value(record) == 400000
        assert engine.evaluate_record(TestType.PARTICLE_COUNT, record) is False

    def test_direction_result_must_match_exactly(self):
        assert engine.evaluate_record(TestType.AIR_FLOW_DIRECTION, AirFlowDirection(result="UYGUNDUR")) is True
        assert engine.evaluate_record(TestType.AIR_FLOW_DIRECTION, AirFlowDirection(result=" UYGUNDUR ")) is False
        assert engine.evaluate_record(TestType.AIR_FLOW_DIRECTION, AirFlowDirection()) is None

    def test_refresh_record_recomputes_cache(self):
        record = ParticleCount(particle05=3000, iso_class="8", meets_criteria=False)
        refreshed = engine.refresh_record(TestType.PARTICLE_COUNT, record)
        assert refreshed.iso_class == "5"
        assert refreshed.average == 3000
        assert refreshed.meets_criteria is True
        # input untouched
        assert record.iso_class == "8"


class TestRoomAggregation:

    def test_pressure_7_pa_is_compliant(self):
        room = make_room(["pressureDifference"], pressureDifference={"pressure": 7})
        assert engine.evaluate_room(room) is True
        assert engine.room_verdict_label(engine.evaluate_room(room)) == "UYGUNDUR"

    def test_pressure_5_pa_is_not_compliant(self):
        room = make_room(["pressureDifference"], pressureDifference={"pressure": 5})
        assert engine.evaluate_room(room) is False
        assert engine.room_verdict_label(engine.evaluate_room(room)) == "UYGUN DEĞİL"

    @pytest.mark.parametrize("count,iso_class,expected", [
        (3000, "5", True),
        (400000, "8", False),
    ])
    def test_particle_count_room(self, count, iso_class, expected):
        room = make_room(["particleCount"], particleCount={"particle05": count})
        assert room.tests.particle_count.iso_class == iso_class
        assert engine.evaluate_room(room) is expected

    def test_low_air_change_rate_fails(self):
        room = make_room(["airflowData"], surface_area=14, height=3,
                         airflowData={"totalFlowRate": 500})
        assert room.volume == 42.0
        assert room.tests.airflow_data.air_change_rate == 11.9
        assert engine.evaluate_room(room) is False

    def test_selected_test_without_record_fails(self):
        room = make_room(["hepaLeakage"])
        assert engine.evaluate_room(room) is False

    def test_empty_selection_is_not_compliant(self):
        assert engine.evaluate_room(make_room([])) is False

    def test_unselected_records_are_ignored(self, compliant_room):
        room = compliant_room.model_copy(update={
            "tests": compliant_room.tests.model_copy(update={"noise_level": None})
        })
        assert engine.evaluate_room(room) is True

    def test_all_instances_must_pass(self):
        room = make_room(["pressureDifference"])
        room = editor.set_test_count(room, "pressureDifference", 2)
        first, second = room.instances_of(TestType.PRESSURE_DIFFERENCE)
        room = editor.update_instance_measurement(room, first.id, {"pressure": 10})
        room = editor.update_instance_measurement(room, second.id, {"pressure": 3})
        assert engine.evaluate_test(room, TestType.PRESSURE_DIFFERENCE) is False

        room = editor.update_instance_measurement(room, second.id, {"pressure": 9})
        assert engine.evaluate_test(room, TestType.PRESSURE_DIFFERENCE) is True
        assert engine.evaluate_room(room) is True

    def test_engine_recomputes_stale_volume(self):
        room = make_room(["airflowData"], surface_area=10, height=3,
                         airflowData={"totalFlowRate": 900})
        stale = room.model_copy(update={"volume": 1.0})
        # 900 / 30 = 30 ACH regardless of the stored volume
        assert engine.evaluate_room(stale) is True


class TestReportAggregation:

    def test_mixed_rooms_are_not_compliant(self, compliant_room, failing_room):
        rooms = [compliant_room, failing_room]
        assert engine.evaluate_report(rooms) is False
        assert engine.final_assessment(rooms) == "Sistem, referans standartlara UYGUN DEĞİL."

    def test_single_room_equals_room_verdict(self, compliant_room, failing_room):
        for room in (compliant_room, failing_room):
            assert engine.evaluate_report([room]) == engine.evaluate_room(room)

    def test_all_compliant(self, compliant_room):
        assert engine.report_outcome([compliant_room]) == ReportOutcome.COMPLIANT
        assert engine.final_assessment([compliant_room]) == "Sistem, referans standartlara UYGUNDUR."

    def test_no_rooms(self):
        assert engine.evaluate_report([]) is False
        assert engine.report_outcome([]) == ReportOutcome.NO_DATA
        assert engine.final_assessment([]) == "Veri bulunamadı."


class TestSummaryBuilder:

    def test_room_summary_covers_all_test_types(self, compliant_room):
        summary = engine.build_room_summary(compliant_room)
        assert [t.test_key for t in summary.tests] == list(TestType)
        assert summary.selected_test_count == 3
        assert summary.passed_test_count == 3
        assert summary.overall_compliant is True
        assert summary.verdict_label == "UYGUNDUR"

    def test_verdict_is_none_without_data(self):
        room = make_room(["hepaLeakage"])
        hepa = next(t for t in engine.build_room_summary(room).tests if t.test_key == TestType.HEPA_LEAKAGE)
        assert hepa.is_selected is True
        assert hepa.has_data is False
        assert hepa.verdict is None
        assert hepa.display_value == "Veri yok"
        assert hepa.criteria == "≤ %0.01"

    def test_display_values(self, compliant_room):
        tests = {t.test_key: t for t in engine.build_room_summary(compliant_room).tests}
        assert tests[TestType.PRESSURE_DIFFERENCE].display_value == "8 Pa"
        assert tests[TestType.HEPA_LEAKAGE].display_value == "0.005%"
        assert tests[TestType.TEMPERATURE_HUMIDITY].display_value == "22°C, 50%"

    def test_summary_is_idempotent(self, compliant_room, failing_room):
        report = make_report([compliant_room, failing_room])
        first = engine.build_report_summary(report).to_json()
        second = engine.build_report_summary(report).to_json()
        assert first == second

    def test_report_totals(self, compliant_room, failing_room):
        summary = engine.build_report_summary(make_report([compliant_room, failing_room]))
        assert summary.total_rooms == 2
        assert summary.compliant_rooms == 1
        assert summary.total_tests == 5
        assert summary.passed_tests == 4
        assert summary.compliance_rate == 80
        assert summary.is_compliant is False
        assert summary.outcome == ReportOutcome.NON_COMPLIANT

    def test_summary_json_uses_camel_case(self, compliant_room):
        data = engine.build_room_summary(compliant_room).to_json()
        assert data["overallCompliant"] is True
        assert data["tests"][0]["testKey"] == "airflowData"
        assert "verdict" in data["tests"][0]


class TestModelRoundTrip:

    def test_volume_survives_serialization(self):
        room = make_room([], surface_area=12.345, height=2.7)
        restored = Room.model_validate(room.to_json())
        assert engine.room_volume(restored.surface_area, restored.height) == room.volume

    def test_unknown_test_key_fails_fast(self):
        with pytest.raises(UnknownTestTypeError) as exc_info:
            Room(id="r", selected_tests=["pressureDifference", "ozoneLevel"])
        assert "ozoneLevel" in str(exc_info.value)
