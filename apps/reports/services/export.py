"""Export entry points: report snapshot in, file bytes and a download name out."""
from __future__ import annotations

import logging
import re
from typing import Optional, Tuple

from django.conf import settings

from ..types import Report
from ..utils.delimited import encode_rows
from ..utils.pdf import PageGeometry, build_pdf
from .flatten import build_report_lines, build_report_rows

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPE = "text/csv; charset=utf-8"
PDF_CONTENT_TYPE = "application/pdf"


def default_geometry() -> PageGeometry:
    """Geometry from ``settings.REPORT_EXPORT``; unset keys keep the built-in defaults."""
    return PageGeometry(**getattr(settings, "REPORT_EXPORT", {}))


def suggested_filename(name: str, extension: str) -> str:
    # Path separators become hyphens as well.
    slug = re.sub(r"[\s/\\]+", "-", name or "").lower()
    if not slug.strip("-"):
        slug = "report"
    return f"{slug}.{extension}"


def export_delimited(report: Report) -> Tuple[bytes, str]:
    rows = build_report_rows(report)
    content = encode_rows(rows).encode("utf-8")
    logger.debug("CSV export: %d rows, %d bytes", len(rows), len(content))
    return content, suggested_filename(report.spreadsheet.name, "csv")


def export_document(report: Report, geometry: Optional[PageGeometry] = None) -> Tuple[bytes, str]:
    if geometry is None:
        geometry = default_geometry()
    content = build_pdf(build_report_lines(report), geometry)
    return content, suggested_filename(report.spreadsheet.name, "pdf")
