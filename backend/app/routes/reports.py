import asyncio
import logging
import uuid
from urllib.parse import quote
from typing import Any, Callable, Dict, List

from fastapi import APIRouter, Body, Depends, Response

from app import config
from app.database import (
    get_device_repository,
    get_document_service,
    get_file_registry,
    get_report_repository,
)
from app.models.schemas import (
    FinalizeResponse,
    InstanceUpdateRequest,
    ReportCreateRequest,
    ReportFilesResponse,
    ReportInfoUpdate,
    ReportListItem,
    RoomCreateRequest,
    RoomUpdateRequest,
    TestCountRequest,
    TestSelectionRequest,
)
from domain.compliance import engine
from domain.models.qualification import HvacReport, Room
from domain.rooms import editor
from services.device_store import DeviceRepository, devices_used_in_report
from services.document_service import RenderedDocument, ReportDocumentService
from services.error_types import DocumentGenerationError, RecordNotFoundError, ValidationError
from services.report_store import ReportFileRegistry, ReportRepository
from utils.logging_utils import log_operation

logger = logging.getLogger(__name__)
router = APIRouter()

EXPORT_FORMATS = ("csv", "xlsx", "pdf")


def _find_room(report: HvacReport, room_id: str) -> Room:
    room = report.find_room(room_id)
    if room is None:
        raise RecordNotFoundError("Room", room_id)
    return room


def _replace_room(report: HvacReport, room: Room) -> HvacReport:
    rooms = [room if r.id == room.id else r for r in report.rooms]
    return report.model_copy(update={"rooms": rooms})


def _edit_room(repo: ReportRepository, report_id: str, room_id: str,
               edit: Callable[[Room], Room]) -> Dict[str, Any]:
    """Load, edit one room, save, and return the updated room"""
    report = repo.get_report(report_id)
    room = edit(_find_room(report, room_id))
    repo.save_report(_replace_room(report, room))
    return room.to_json()


def _list_item(report: HvacReport) -> ReportListItem:
    info = report.report_info
    return ReportListItem(
        id=report.id,
        report_number=info.report_number,
        hospital_name=info.hospital_name,
        measurement_date=info.measurement_date,
        room_count=len(report.rooms),
        is_compliant=engine.evaluate_report(report.rooms),
        created_at=report.created_at,
        updated_at=report.updated_at,
    )


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@router.get("", response_model=List[ReportListItem])
async def list_reports(repo: ReportRepository = Depends(get_report_repository)):
    """List stored reports with their computed verdicts"""
    reports = repo.list_reports()
    logger.info(f"Listed {len(reports)} reports")
    return [_list_item(report) for report in reports]


@router.post("", status_code=201)
async def create_report(request: ReportCreateRequest,
                        repo: ReportRepository = Depends(get_report_repository)):
    report = HvacReport(id=request.id or str(uuid.uuid4()), report_info=request.report_info)
    report = repo.save_report(report)
    logger.info(f"Created report {report.id}")
    return report.to_json()


@router.get("/{report_id}")
async def get_report(report_id: str, repo: ReportRepository = Depends(get_report_repository)):
    return repo.get_report(report_id).to_json()


@router.patch("/{report_id}")
async def update_report_info(report_id: str, request: ReportInfoUpdate,
                             repo: ReportRepository = Depends(get_report_repository)):
    report = repo.get_report(report_id)
    info = report.report_info.model_copy(update=request.model_dump(exclude_unset=True))
    report = repo.save_report(report.model_copy(update={"report_info": info}))
    return report.to_json()


@router.delete("/{report_id}", status_code=204)
async def delete_report(report_id: str,
                        repo: ReportRepository = Depends(get_report_repository),
                        files: ReportFileRegistry = Depends(get_file_registry)):
    repo.delete_report(report_id)
    files.forget(report_id)
    return Response(status_code=204)


@router.post("/{report_id}/finalize", response_model=FinalizeResponse)
async def finalize_report(report_id: str, repo: ReportRepository = Depends(get_report_repository)):
    """
    Consolidate test instances, validate completeness and save the report.

    Responds 422 with the list of Turkish validation messages when the report
    is incomplete.
    """
    report = repo.get_report(report_id)
    rooms = [editor.refresh_derived(editor.consolidate_instances(room)) for room in report.rooms]
    report = report.model_copy(update={"rooms": rooms})

    errors = editor.validate_report_for_save(report)
    if errors:
        raise ValidationError("Rapor kaydedilemedi, eksik bilgiler var.", errors=errors,
                              details={'report_id': report_id})

    report = repo.save_report(report)
    return FinalizeResponse(
        report_id=report.id,
        is_compliant=engine.evaluate_report(report.rooms),
        assessment=engine.final_assessment(report.rooms),
    )


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

@router.post("/{report_id}/rooms", status_code=201)
async def add_room(report_id: str, request: RoomCreateRequest,
                   repo: ReportRepository = Depends(get_report_repository)):
    report = repo.get_report(report_id)
    room = editor.create_room(
        room_no=request.room_no,
        room_name=request.room_name,
        surface_area=request.surface_area,
        height=request.height,
        test_mode=request.test_mode,
        flow_type=request.flow_type,
        room_class=request.room_class,
    )
    room = editor.set_selected_tests(room, request.selected_tests)
    repo.save_report(report.model_copy(update={"rooms": report.rooms + [room]}))
    logger.info(f"Added room {room.id} to report {report_id}")
    return room.to_json()


@router.patch("/{report_id}/rooms/{room_id}")
async def update_room(report_id: str, room_id: str, request: RoomUpdateRequest,
                      repo: ReportRepository = Depends(get_report_repository)):
    changes = request.model_dump(exclude_unset=True)
    return _edit_room(repo, report_id, room_id, lambda room: editor.update_room_basic_info(room, **changes))


@router.delete("/{report_id}/rooms/{room_id}", status_code=204)
async def delete_room(report_id: str, room_id: str,
                      repo: ReportRepository = Depends(get_report_repository)):
    report = repo.get_report(report_id)
    _find_room(report, room_id)
    repo.save_report(report.model_copy(update={"rooms": [r for r in report.rooms if r.id != room_id]}))
    return Response(status_code=204)


@router.put("/{report_id}/rooms/{room_id}/tests")
async def select_tests(report_id: str, room_id: str, request: TestSelectionRequest,
                       repo: ReportRepository = Depends(get_report_repository)):
    return _edit_room(repo, report_id, room_id, lambda room: editor.set_selected_tests(room, request.tests))


@router.put("/{report_id}/rooms/{room_id}/tests/{test_key}/count")
async def set_test_count(report_id: str, room_id: str, test_key: str, request: TestCountRequest,
                         repo: ReportRepository = Depends(get_report_repository)):
    return _edit_room(repo, report_id, room_id,
                      lambda room: editor.set_test_count(room, test_key, request.count))


@router.patch("/{report_id}/rooms/{room_id}/tests/{test_key}")
async def update_measurement(report_id: str, room_id: str, test_key: str,
                             changes: Dict[str, Any] = Body(...),
                             repo: ReportRepository = Depends(get_report_repository)):
    """Write raw measurement fields of a room's test record"""
    return _edit_room(repo, report_id, room_id,
                      lambda room: editor.update_measurement(room, test_key, changes))


@router.patch("/{report_id}/rooms/{room_id}/instances/{instance_id}")
async def update_instance(report_id: str, room_id: str, instance_id: str,
                          request: InstanceUpdateRequest,
                          repo: ReportRepository = Depends(get_report_repository),
                          devices: DeviceRepository = Depends(get_device_repository)):
    fields = request.model_dump(exclude_unset=True)
    device_name = request.device_name
    if request.device_id and not device_name:
        device_name = devices.get(request.device_id).device_name

    def edit(room: Room) -> Room:
        if request.measurements:
            room = editor.update_instance_measurement(room, instance_id, request.measurements)
        if "device_id" in fields:
            room = editor.assign_instance_device(room, instance_id, request.device_id, device_name)
        return room

    return _edit_room(repo, report_id, room_id, edit)


# ---------------------------------------------------------------------------
# Summary and documents
# ---------------------------------------------------------------------------

@router.get("/{report_id}/summary")
async def get_summary(report_id: str, repo: ReportRepository = Depends(get_report_repository)):
    """Per-room, per-test verdicts and the overall assessment"""
    return engine.build_report_summary(repo.get_report(report_id)).to_json()


@router.get("/{report_id}/export/{fmt}")
async def export_report(report_id: str, fmt: str,
                        repo: ReportRepository = Depends(get_report_repository),
                        devices: DeviceRepository = Depends(get_device_repository),
                        files: ReportFileRegistry = Depends(get_file_registry),
                        documents: ReportDocumentService = Depends(get_document_service)):
    """
    Download the report as CSV, Excel or PDF.

    Rendering runs in a worker thread with a timeout; a failed or slow render
    never modifies the stored report.
    """
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Unsupported export format: '{fmt}'", errors=[fmt])

    report = repo.get_report(report_id)
    used_devices = devices_used_in_report(report, devices.list())

    renderers: Dict[str, Callable[[], RenderedDocument]] = {
        "csv": lambda: documents.render_csv(report),
        "xlsx": lambda: documents.render_excel(report, used_devices),
        "pdf": lambda: documents.render_pdf(report, used_devices),
    }

    with log_operation("report_export", {"report_id": report_id, "format": fmt}, logger):
        try:
            document = await asyncio.wait_for(asyncio.to_thread(renderers[fmt]),
                                              timeout=config.PDF_RENDER_TIMEOUT)
        except asyncio.TimeoutError:
            raise DocumentGenerationError(
                f"Document rendering timed out after {config.PDF_RENDER_TIMEOUT:.0f}s",
                details={'report_id': report_id, 'format': fmt}
            )

    await files.save_document(report_id, document.kind, document.file_name, document.content)
    return Response(
        content=document.content,
        media_type=document.media_type,
        headers={"Content-Disposition": f'attachment; filename="{quote(document.file_name)}"'},
    )


@router.get("/{report_id}/files", response_model=ReportFilesResponse)
async def list_files(report_id: str,
                     repo: ReportRepository = Depends(get_report_repository),
                     files: ReportFileRegistry = Depends(get_file_registry)):
    repo.get_report(report_id)
    return ReportFilesResponse(report_id=report_id, files=files.files_for(report_id))

