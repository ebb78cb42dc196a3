"""
Qualification report documents (CSV, Excel, HTML/PDF)

Every generator works from `build_report_summary` output; verdicts are never
re-derived here.
"""

import io
import os
import re
import csv
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

import pandas as pd
import pdfkit
from jinja2 import Environment, FileSystemLoader

from domain.compliance.engine import build_report_summary
from domain.models.qualification import HvacReport
from services.device_store import Device
from services.error_types import DocumentGenerationError
from utils.logging_utils import log_operation

logger = logging.getLogger(__name__)

REPORT_TITLE = "HVAC PERFORMANS NİTELEME TEST RAPORU"
NOT_SPECIFIED = "Belirtilmemiş"

# kind -> (extension, media type)
DOCUMENT_KINDS = {
    "csv": ("csv", "text/csv; charset=utf-8"),
    "excel": ("xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
    "pdf": ("pdf", "application/pdf"),
    "html": ("html", "text/html; charset=utf-8"),
}

RESULT_COLUMNS = ["Mahal No", "Mahal Adı", "Test No", "Test Adı", "Kriter", "Ölçüm Değeri", "Sonuç"]


@dataclass
class RenderedDocument:
    kind: str
    file_name: str
    media_type: str
    content: bytes


def _sanitize_filename(value: str) -> str:
    safe_name = re.sub(r'[<>:"/\\|?*]', '_', value)
    safe_name = re.sub(r'\s+', '_', safe_name)
    return safe_name.strip('._')[:50]


def export_filename(report: HvacReport, kind: str, on: Optional[date] = None) -> str:
    """`HVAC_Raporu_<reportNumber>_<YYYY-MM-DD>.<ext>`"""
    extension, _ = DOCUMENT_KINDS[kind]
    number = _sanitize_filename(report.report_info.report_number) or report.id
    day = (on or date.today()).isoformat()
    return f"HVAC_Raporu_{number}_{day}.{extension}"


class ReportDocumentService:
    """Renders qualification reports to downloadable documents"""

    def __init__(self, disable_pdf: Optional[bool] = None, wkhtmltopdf_path: Optional[str] = None):
        self.template_dir = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'html_templates')
        if disable_pdf is None:
            disable_pdf = os.getenv("DISABLE_PDF", "false").lower() == "true"
        self.pdf_disabled = disable_pdf
        self.wkhtmltopdf_path = wkhtmltopdf_path or os.getenv('WKHTMLTOPDF_PATH', '/usr/local/bin/wkhtmltopdf')

        self.jinja_env = Environment(
            loader=FileSystemLoader(self.template_dir),
            autoescape=True
        )
        self.jinja_env.filters['or_unspecified'] = lambda v: v if v not in (None, "") else NOT_SPECIFIED

        self.pdf_options = {
            'page-size': 'A4',
            'margin-top': '15mm',
            'margin-right': '15mm',
            'margin-bottom': '15mm',
            'margin-left': '15mm',
            'encoding': "UTF-8",
            'no-outline': None,
            'enable-local-file-access': None,
            'print-media-type': None,
        }

    # -- CSV ---------------------------------------------------------------

    def render_csv(self, report: HvacReport) -> RenderedDocument:
        summary = build_report_summary(report)
        info = summary.report_info

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow([REPORT_TITLE])
        writer.writerow([f"{info.hospital_name} - {info.report_number}"])
        writer.writerow([f"Tarih: {info.measurement_date}"])
        writer.writerow([])
        writer.writerow(["Rapor Bilgileri"])
        writer.writerow(["Rapor No", info.report_number])
        writer.writerow(["Testi Yapan", info.tester_name])
        writer.writerow(["Raporu Hazırlayan", info.report_prepared_by])
        writer.writerow(["Onaylayan", info.approved_by])
        writer.writerow(["Kuruluş", info.organization_name])
        writer.writerow([])

        for position, room in enumerate(summary.rooms, start=1):
            writer.writerow([f"MAHAL {position}: {room.room_no} - {room.room_name}"])
            writer.writerow(["Yüzey Alanı", f"{room.surface_area} m²"])
            writer.writerow(["Yükseklik", f"{room.height} m"])
            writer.writerow(["Hacim", f"{room.volume} m³"])
            writer.writerow(["Test Modu", room.test_mode])
            writer.writerow(["Akış Biçimi", room.flow_type])
            writer.writerow(["Mahal Sınıfı", room.room_class])
            writer.writerow([])
            writer.writerow(["Test No", "Test Adı", "Kriter", "Ölçüm Değeri", "Sonuç"])
            for number, test in enumerate(room.selected(), start=1):
                writer.writerow([number, test.test_name, test.criteria, test.display_value, test.verdict_label])
            writer.writerow(["Mahal Sonucu", room.verdict_label])
            writer.writerow([])

        writer.writerow(["Genel Değerlendirme", summary.assessment])

        # BOM so spreadsheet applications detect UTF-8
        content = ("\ufeff" + output.getvalue()).encode("utf-8")
        return self._document(report, "csv", content)

    # -- Excel -------------------------------------------------------------

    def render_excel(self, report: HvacReport, devices: Optional[List[Device]] = None) -> RenderedDocument:
        summary = build_report_summary(report)
        info = summary.report_info

        info_df = pd.DataFrame([
            ("Hastane", info.hospital_name),
            ("Rapor No", info.report_number),
            ("Ölçüm Tarihi", info.measurement_date),
            ("Testi Yapan", info.tester_name),
            ("Raporu Hazırlayan", info.report_prepared_by),
            ("Onaylayan", info.approved_by),
            ("Kuruluş", info.organization_name),
            ("Toplam Mahal", summary.total_rooms),
            ("Uygun Mahal", summary.compliant_rooms),
            ("Uygunluk Oranı", f"%{summary.compliance_rate}"),
            ("Genel Değerlendirme", summary.assessment),
        ], columns=["Alan", "Değer"])

        rows = [
            [room.room_no, room.room_name, number, test.test_name, test.criteria,
             test.display_value, test.verdict_label]
            for room in summary.rooms
            for number, test in enumerate(room.selected(), start=1)
        ]
        results_df = pd.DataFrame(rows, columns=RESULT_COLUMNS)

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine='xlsxwriter') as writer:
            info_df.to_excel(writer, sheet_name='Genel Bilgiler', index=False)
            results_df.to_excel(writer, sheet_name='Test Sonuçları', index=False)

            workbook = writer.book
            green_format = workbook.add_format({'bg_color': '#C6EFCE', 'font_color': '#006100'})
            red_format = workbook.add_format({'bg_color': '#FFC7CE', 'font_color': '#9C0006'})

            info_sheet = writer.sheets['Genel Bilgiler']
            info_sheet.set_column('A:A', 22)
            info_sheet.set_column('B:B', 50)

            results_sheet = writer.sheets['Test Sonuçları']
            results_sheet.set_column('A:C', 10)
            results_sheet.set_column('D:E', 22)
            results_sheet.set_column('F:F', 30)
            results_sheet.set_column('G:G', 15)
            if rows:
                cell_range = f'A2:G{len(rows) + 1}'
                results_sheet.conditional_format(cell_range, {
                    'type': 'formula',
                    'criteria': '=$G2="UYGUNDUR"',
                    'format': green_format
                })
                results_sheet.conditional_format(cell_range, {
                    'type': 'formula',
                    'criteria': '=$G2="UYGUN DEĞİL"',
                    'format': red_format
                })

            if devices:
                devices_df = pd.DataFrame([
                    [d.device_name, d.device_type, d.manufacturer, d.model, d.serial_number,
                     d.last_calibration_date.isoformat() if d.last_calibration_date else NOT_SPECIFIED,
                     d.next_calibration_date.isoformat() if d.next_calibration_date else NOT_SPECIFIED]
                    for d in devices
                ], columns=["Cihaz", "Tipi", "Üretici", "Model", "Seri No", "Son Kalibrasyon", "Sonraki Kalibrasyon"])
                devices_df.to_excel(writer, sheet_name='Cihazlar', index=False)
                writer.sheets['Cihazlar'].set_column('A:G', 20)

        return self._document(report, "excel", buffer.getvalue())

    # -- HTML / PDF --------------------------------------------------------

    def render_html(self, report: HvacReport, devices: Optional[List[Device]] = None) -> str:
        summary = build_report_summary(report)
        template = self.jinja_env.get_template('qualification_report.html')
        return template.render(
            title=REPORT_TITLE,
            summary=summary,
            info=summary.report_info,
            devices=devices or [],
            generation_date=datetime.now().strftime('%d.%m.%Y %H:%M'),
        )

    def render_pdf(self, report: HvacReport, devices: Optional[List[Device]] = None) -> RenderedDocument:
        """
        Render the report to PDF through wkhtmltopdf.

        With PDF generation disabled the HTML document is returned instead.

        Raises:
            DocumentGenerationError: wkhtmltopdf is missing or fails
        """
        with log_operation("report_pdf", {"report_id": report.id, "rooms": len(report.rooms)}, logger):
            html = self.render_html(report, devices)
            if self.pdf_disabled:
                logger.info("PDF generation disabled, returning HTML document")
                return self._document(report, "html", html.encode("utf-8"))

            try:
                config = pdfkit.configuration(wkhtmltopdf=self.wkhtmltopdf_path)
                content = pdfkit.from_string(html, False, options=self.pdf_options, configuration=config)
            except OSError as e:
                raise DocumentGenerationError(
                    "wkhtmltopdf missing or failed; install wkhtmltopdf or set DISABLE_PDF=true",
                    details={'report_id': report.id, 'error': str(e)}
                )
            return self._document(report, "pdf", content)

    def _document(self, report: HvacReport, kind: str, content: bytes) -> RenderedDocument:
        _, media_type = DOCUMENT_KINDS[kind]
        return RenderedDocument(
            kind=kind,
            file_name=export_filename(report, kind),
            media_type=media_type,
            content=content,
        )


