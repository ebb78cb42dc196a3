"""
Report persistence

Reports, devices and generated-file metadata are stored as JSON documents under
HVAC_STORAGE_PATH, one file per key (`hvac-reports.json`, ...). Every save
rewrites the whole document through a temp file + rename.
"""

import os
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiofiles
from pydantic import ValidationError as PydanticValidationError

from domain.models.qualification import CamelModel, HvacReport
from services.error_types import (
    NonCriticalError,
    PersistenceError,
    RecordNotFoundError,
    UnknownTestTypeError,
    log_error_with_context,
)
from utils.logging_utils import timed_operation

logger = logging.getLogger(__name__)

REPORTS_KEY = "hvac-reports"
REPORT_FILES_KEY = "hvac-report-files"


def utc_now_iso() -> str:
    return datetime.utcnow().isoformat(timespec="milliseconds") + "Z"


class JsonDocumentStore:
    """Key/value store of JSON documents in a directory"""

    def __init__(self, storage_path: str):
        self.storage_path = storage_path
        self.documents_dir = os.path.join(storage_path, "documents")
        try:
            os.makedirs(self.documents_dir, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Storage path is not writable: {storage_path}: {e}",
                                   details={'storage_path': storage_path})
        logger.info(f"[STORAGE INIT] JSON document store at {storage_path}")

    def _path(self, key: str) -> str:
        return os.path.join(self.storage_path, f"{key}.json")

    def read(self, key: str, default: Any) -> Any:
        path = self._path(key)
        if not os.path.exists(path):
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(
                f"Could not read document '{key}': {e}",
                user_message="Kayıtlı veriler okunamadı.",
                details={'key': key, 'path': path}
            )

    def write(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = f"{path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
        except (OSError, TypeError) as e:
            raise PersistenceError(f"Could not write document '{key}': {e}", details={'key': key, 'path': path})


class ReportRepository:
    """CRUD over the ordered `hvac-reports` list"""

    def __init__(self, store: JsonDocumentStore):
        self.store = store

    def _load(self) -> List[HvacReport]:
        raw = self.store.read(REPORTS_KEY, [])
        try:
            return [HvacReport.model_validate(item) for item in raw]
        except (PydanticValidationError, UnknownTestTypeError) as e:
            raise PersistenceError(
                f"Stored reports are malformed: {e}",
                user_message="Kayıtlı raporlar okunamadı.",
                details={'key': REPORTS_KEY}
            )

    def _dump(self, reports: List[HvacReport]) -> None:
        self.store.write(REPORTS_KEY, [report.to_json() for report in reports])

    def list_reports(self) -> List[HvacReport]:
        return self._load()

    def get_report(self, report_id: str) -> HvacReport:
        for report in self._load():
            if report.id == report_id:
                return report
        raise RecordNotFoundError("Report", report_id)

    @timed_operation("save_report")
    def save_report(self, report: HvacReport) -> HvacReport:
        """Insert or replace a report, stamping its timestamps"""
        now = utc_now_iso()
        report = report.model_copy(update={
            "created_at": report.created_at or now,
            "updated_at": now,
        })

        reports = self._load()
        for position, existing in enumerate(reports):
            if existing.id == report.id:
                reports[position] = report
                break
        else:
            reports.append(report)

        self._dump(reports)
        logger.info(f"Saved report {report.id} ({len(report.rooms)} rooms)")
        return report

    def delete_report(self, report_id: str) -> None:
        reports = self._load()
        remaining = [r for r in reports if r.id != report_id]
        if len(remaining) == len(reports):
            raise RecordNotFoundError("Report", report_id)
        self._dump(remaining)
        logger.info(f"Deleted report {report_id}")


class GeneratedFile(CamelModel):
    file_name: str
    created_at: str
    size: int


class ReportFileRegistry:
    """
    Metadata of documents generated for each report.

    Layout of `hvac-report-files`: {reportId: {kind: {fileName, createdAt, size}}}
    """

    def __init__(self, store: JsonDocumentStore):
        self.store = store

    def files_for(self, report_id: str) -> Dict[str, GeneratedFile]:
        entries = self.store.read(REPORT_FILES_KEY, {}).get(report_id, {})
        return {kind: GeneratedFile.model_validate(meta) for kind, meta in entries.items()}

    def record(self, report_id: str, kind: str, file_name: str, size: int) -> GeneratedFile:
        entry = GeneratedFile(file_name=file_name, created_at=utc_now_iso(), size=size)
        files = self.store.read(REPORT_FILES_KEY, {})
        files.setdefault(report_id, {})[kind] = entry.to_json()
        self.store.write(REPORT_FILES_KEY, files)
        return entry

    def forget(self, report_id: str) -> None:
        files = self.store.read(REPORT_FILES_KEY, {})
        if files.pop(report_id, None) is not None:
            self.store.write(REPORT_FILES_KEY, files)

    async def save_document(self, report_id: str, kind: str, file_name: str,
                            content: bytes) -> Optional[GeneratedFile]:
        """
        Keep a copy of a generated document and record its metadata.

        Failures are logged and swallowed: the download itself must not fail
        because the copy could not be kept.
        """
        path = os.path.join(self.store.documents_dir, f"{report_id}_{file_name}")
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
            return self.record(report_id, kind, file_name, len(content))
        except (OSError, PersistenceError) as e:
            log_error_with_context(
                NonCriticalError(f"Could not keep generated document: {e}"),
                {'report_id': report_id, 'kind': kind, 'file_name': file_name}
            )
            return None
