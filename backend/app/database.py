from functools import lru_cache
from pathlib import Path

from fastapi import Depends

from app import config
from services.device_store import CalibrationRepository, DeviceRepository
from services.document_service import ReportDocumentService
from services.report_store import JsonDocumentStore, ReportFileRegistry, ReportRepository


@lru_cache(maxsize=1)
def _default_store() -> JsonDocumentStore:
    Path(config.STORAGE_PATH).mkdir(parents=True, exist_ok=True)
    return JsonDocumentStore(config.STORAGE_PATH)


def get_store() -> JsonDocumentStore:
    """Dependency for the JSON document store (overridden in tests)"""
    return _default_store()


def get_report_repository(store: JsonDocumentStore = Depends(get_store)) -> ReportRepository:
    return ReportRepository(store)


def get_file_registry(store: JsonDocumentStore = Depends(get_store)) -> ReportFileRegistry:
    return ReportFileRegistry(store)


def get_device_repository(store: JsonDocumentStore = Depends(get_store)) -> DeviceRepository:
    return DeviceRepository(store)


def get_calibration_repository(store: JsonDocumentStore = Depends(get_store),
                               devices: DeviceRepository = Depends(get_device_repository)) -> CalibrationRepository:
    return CalibrationRepository(store, devices)


@lru_cache(maxsize=1)
def get_document_service() -> ReportDocumentService:
    return ReportDocumentService(disable_pdf=config.DISABLE_PDF, wkhtmltopdf_path=config.WKHTMLTOPDF_PATH)
