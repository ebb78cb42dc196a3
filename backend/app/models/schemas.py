from typing import Any, Dict, List, Optional

from pydantic import Field

from domain.models.qualification import CamelModel, FlowType, ReportInfo, RoomClass, TestMode
from services.report_store import GeneratedFile


class ReportCreateRequest(CamelModel):
    """Request model for creating a report"""
    id: Optional[str] = None
    report_info: ReportInfo = Field(default_factory=ReportInfo)


class ReportInfoUpdate(CamelModel):
    """Partial update of a report's header information"""
    hospital_name: Optional[str] = None
    report_number: Optional[str] = None
    measurement_date: Optional[str] = None
    tester_name: Optional[str] = None
    report_prepared_by: Optional[str] = None
    approved_by: Optional[str] = None
    organization_name: Optional[str] = None
    logo: Optional[str] = None
    seal: Optional[str] = None


class ReportListItem(CamelModel):
    """One row of the report list"""
    id: str
    report_number: str
    hospital_name: str
    measurement_date: str
    room_count: int
    is_compliant: bool
    created_at: str
    updated_at: str


class RoomCreateRequest(CamelModel):
    """Request model for adding a room to a report"""
    room_no: str = ""
    room_name: str = ""
    surface_area: float = 0.0
    height: float = 0.0
    test_mode: TestMode = TestMode.AT_REST
    flow_type: FlowType = FlowType.TURBULENCE
    room_class: RoomClass = RoomClass.CLASS_II
    selected_tests: List[str] = Field(default_factory=list)


class RoomUpdateRequest(CamelModel):
    """Partial update of a room's descriptive fields"""
    room_no: Optional[str] = None
    room_name: Optional[str] = None
    surface_area: Optional[float] = None
    height: Optional[float] = None
    test_mode: Optional[TestMode] = None
    flow_type: Optional[FlowType] = None
    room_class: Optional[RoomClass] = None


class TestSelectionRequest(CamelModel):
    """Replace a room's selected tests"""
    __test__ = False

    tests: List[str]


class TestCountRequest(CamelModel):
    __test__ = False

    count: int


class InstanceUpdateRequest(CamelModel):
    """Raw measurement fields and/or the device used for a test instance"""
    measurements: Dict[str, Any] = Field(default_factory=dict)
    device_id: Optional[str] = None
    device_name: Optional[str] = None


class FinalizeResponse(CamelModel):
    report_id: str
    is_compliant: bool
    assessment: str


class ReportFilesResponse(CamelModel):
    report_id: str
    files: Dict[str, GeneratedFile]
