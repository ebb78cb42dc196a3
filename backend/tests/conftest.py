"""
Pytest configuration and fixtures
"""
import pytest
from fastapi.testclient import TestClient

from app.database import get_document_service, get_store
from app.main import app
from domain.models.qualification import HvacReport, ReportInfo, Room
from domain.rooms import editor
from services.device_store import CalibrationRepository, DeviceRepository
from services.document_service import ReportDocumentService
from services.report_store import JsonDocumentStore, ReportFileRegistry, ReportRepository


@pytest.fixture
def store(tmp_path) -> JsonDocumentStore:
    """JSON document store in a per-test temporary directory"""
    return JsonDocumentStore(str(tmp_path))


@pytest.fixture
def report_repo(store) -> ReportRepository:
    return ReportRepository(store)


@pytest.fixture
def file_registry(store) -> ReportFileRegistry:
    return ReportFileRegistry(store)


@pytest.fixture
def device_repo(store) -> DeviceRepository:
    return DeviceRepository(store)


@pytest.fixture
def calibration_repo(store, device_repo) -> CalibrationRepository:
    return CalibrationRepository(store, device_repo)


@pytest.fixture
def documents() -> ReportDocumentService:
    """Document service with PDF rendering disabled (HTML fallback)"""
    return ReportDocumentService(disable_pdf=True)


@pytest.fixture
def client(store, documents):
    """Test client with storage overridden to the temporary store"""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_document_service] = lambda: documents

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def make_room(selected=(), room_id="room-1", surface_area=14.0, height=3.0, **measurements) -> Room:
    """
    Room with the given selection and single-record measurements.

    Keyword arguments map a test key to its raw fields, e.g.
    make_room(["pressureDifference"], pressureDifference={"pressure": 7}).
    """
    room = editor.create_room(room_no="A-101", room_name="Ameliyathane 1",
                              surface_area=surface_area, height=height, room_id=room_id)
    room = editor.set_selected_tests(room, selected)
    for key, fields in measurements.items():
        room = editor.update_measurement(room, key, fields)
    return room


def make_report(rooms, report_id="report-1") -> HvacReport:
    return HvacReport(
        id=report_id,
        report_info=ReportInfo(
            hospital_name="Ankara Şehir Hastanesi",
            report_number="HVAC-2024-001",
            measurement_date="2024-11-20",
            tester_name="Mehmet Yılmaz",
            report_prepared_by="Ayşe Demir",
            approved_by="Ali Kaya",
            organization_name="Calimed",
        ),
        rooms=list(rooms),
    )


@pytest.fixture
def compliant_room() -> Room:
    return make_room(
        ["pressureDifference", "hepaLeakage", "temperatureHumidity"],
        pressureDifference={"pressure": 8},
        hepaLeakage={"actualLeakage": 0.005},
        temperatureHumidity={"temperature": 22, "humidity": 50},
    )


@pytest.fixture
def failing_room() -> Room:
    return make_room(
        ["pressureDifference", "noiseLevel"],
        room_id="room-2",
        pressureDifference={"pressure": 4},
        noiseLevel={"leq": 42},
    )
