"""Minimal PDF 1.4 writer for plain-text reports.

One Type1 font, one size, left-aligned lines, fixed margins. Each page gets
its own content stream; all pages share a single font object.
"""
from __future__ import annotations

import logging
import math
import unicodedata
from dataclasses import dataclass
from textwrap import wrap
from typing import List, Optional, Sequence

from ..exceptions import GeometryError

logger = logging.getLogger(__name__)

PAGE_WIDTH = 612
PAGE_HEIGHT = 792
MARGIN = 72
LINE_HEIGHT = 16
FONT_SIZE = 12
MAX_CHARS = 90
FONT_NAME = "Helvetica"

HEADER = b"%PDF-1.4\n"
CATALOG_OBJ_NUM = 1
PAGES_OBJ_NUM = 2
PAGE_OBJECTS_START = 3


@dataclass(frozen=True)
class PageGeometry:
    page_width: float = PAGE_WIDTH
    page_height: float = PAGE_HEIGHT
    margin: float = MARGIN
    line_pitch: float = LINE_HEIGHT
    font_size: float = FONT_SIZE
    max_chars: int = MAX_CHARS
    font_name: str = FONT_NAME

    @property
    def lines_per_page(self) -> int:
        return int((self.page_height - 2 * self.margin) // self.line_pitch)

    def validate(self) -> "PageGeometry":
        for name in ("page_width", "page_height", "margin", "line_pitch", "font_size", "max_chars"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise GeometryError(name, value, f"{name} must be a positive finite number, got {value!r}")
        if self.margin >= self.page_width:
            raise GeometryError(
                "margin",
                self.margin,
                f"margin={self.margin!r} leaves no room on a page {self.page_width!r} wide",
            )
        lines = self.lines_per_page
        if lines < 1:
            raise GeometryError(
                "lines_per_page",
                lines,
                f"page_height={self.page_height!r} with margin={self.margin!r} and "
                f"line_pitch={self.line_pitch!r} leaves room for {lines} lines per page",
            )
        return self


@dataclass(frozen=True)
class PdfObject:
    number: int
    body: bytes

    def serialize(self) -> bytes:
        return b"%d 0 obj\n" % self.number + self.body + b"\nendobj\n"


@dataclass(frozen=True)
class AssembledDocument:
    pages: List[List[str]]
    objects: List[PdfObject]
    offsets: List[int]
    xref_offset: int
    data: bytes

    @property
    def page_count(self) -> int:
        return len(self.pages)


def _num(value) -> str:
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return f"{value:.4f}".rstrip("0").rstrip(".")
    return str(value)


def _transliterate(text: str) -> str:
    """Reduce text to characters the WinAnsi font encoding can show."""
    out = []
    for ch in text:
        try:
            ch.encode("cp1252")
            out.append(ch)
            continue
        except UnicodeEncodeError:
            pass
        # "ﬁ" -> "fi", "ő" -> "o"
        base = "".join(c for c in unicodedata.normalize("NFKD", ch) if not unicodedata.combining(c))
        try:
            base.encode("cp1252")
        except UnicodeEncodeError:
            base = ""
        out.append(base or "?")
    return "".join(out)


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _pdf_string(text: str) -> str:
    """Literal string operand; anything outside printable ASCII becomes an octal escape."""
    parts = []
    for ch in _escape(_transliterate(text)):
        if " " <= ch <= "~":
            parts.append(ch)
        else:
            parts.extend(f"\\{byte:03o}" for byte in ch.encode("cp1252"))
    return "(" + "".join(parts) + ")"


def wrap_line(text: str, width: int = MAX_CHARS) -> List[str]:
    """Greedy word wrap. Words are never split, so one long word may exceed ``width``."""
    if width < 1:
        raise GeometryError("max_chars", width, f"max_chars must be positive, got {width!r}")
    words = text.split()
    if not words:
        return [""]
    return wrap(" ".join(words), width, break_long_words=False, break_on_hyphens=False)


def wrap_lines(lines: Sequence[str], width: int = MAX_CHARS) -> List[str]:
    wrapped = []
    for line in lines:
        wrapped.extend(wrap_line(line, width))
    return wrapped


def paginate(lines: Sequence[str], lines_per_page: int) -> List[List[str]]:
    if lines_per_page < 1:
        raise GeometryError(
            "lines_per_page", lines_per_page, f"lines_per_page must be at least 1, got {lines_per_page!r}"
        )
    pages = []
    current = []
    for line in lines:
        if len(current) >= lines_per_page:
            pages.append(current)
            current = []
        current.append(line)
    if current:
        pages.append(current)
    # A document without pages is rejected by most readers.
    return pages or [[""]]


def _build_page_stream(lines: Sequence[str], geometry: PageGeometry) -> bytes:
    parts = []
    for index, line in enumerate(lines):
        y = geometry.page_height - geometry.margin - index * geometry.line_pitch
        parts.append(
            f"BT /F1 {_num(geometry.font_size)} Tf {_num(geometry.margin)} {_num(y)} Td "
            f"{_pdf_string(line)} Tj ET"
        )
    return "\n".join(parts).encode("ascii")


def _stream(data: bytes) -> bytes:
    return b"<< /Length %d >>\nstream\n" % len(data) + data + b"\nendstream"


def page_object_number(index: int) -> int:
    return PAGE_OBJECTS_START + 2 * index


def font_object_number(page_count: int) -> int:
    return PAGE_OBJECTS_START + 2 * page_count


def _build_objects(pages: List[List[str]], geometry: PageGeometry) -> List[PdfObject]:
    page_count = len(pages)
    font_obj_num = font_object_number(page_count)
    kids = " ".join(f"{page_object_number(i)} 0 R" for i in range(page_count))
    media_box = f"[0 0 {_num(geometry.page_width)} {_num(geometry.page_height)}]"

    objects = [
        PdfObject(CATALOG_OBJ_NUM, f"<< /Type /Catalog /Pages {PAGES_OBJ_NUM} 0 R >>".encode("ascii")),
        PdfObject(
            PAGES_OBJ_NUM,
            f"<< /Type /Pages /Kids [{kids}] /Count {page_count} >>".encode("ascii"),
        ),
    ]
    for index, page_lines in enumerate(pages):
        page_obj_num = page_object_number(index)
        content_obj_num = page_obj_num + 1
        objects.append(
            PdfObject(
                page_obj_num,
                (
                    "<< /Type /Page "
                    f"/Parent {PAGES_OBJ_NUM} 0 R "
                    f"/MediaBox {media_box} "
                    f"/Contents {content_obj_num} 0 R "
                    f"/Resources << /Font << /F1 {font_obj_num} 0 R >> >> >>"
                ).encode("ascii"),
            )
        )
        objects.append(PdfObject(content_obj_num, _stream(_build_page_stream(page_lines, geometry))))
    objects.append(
        PdfObject(
            font_obj_num,
            (
                "<< /Type /Font /Subtype /Type1 "
                f"/BaseFont /{geometry.font_name} /Encoding /WinAnsiEncoding >>"
            ).encode("ascii"),
        )
    )
    return objects


def assemble(lines: Sequence[str], geometry: Optional[PageGeometry] = None) -> AssembledDocument:
    geometry = (geometry or PageGeometry()).validate()
    pages = paginate(wrap_lines(lines, geometry.max_chars), geometry.lines_per_page)
    objects = _build_objects(pages, geometry)

    # Serialize every object first, then lay them out; offsets come from byte lengths only.
    chunks = [obj.serialize() for obj in objects]
    offsets = [0]
    position = len(HEADER)
    for chunk in chunks:
        offsets.append(position)
        position += len(chunk)
    xref_start = position

    size = len(objects) + 1
    xref = [f"xref\n0 {size}\n".encode("ascii"), b"0000000000 65535 f \n"]
    for offset in offsets[1:]:
        xref.append(f"{offset:010d} 00000 n \n".encode("ascii"))
    trailer = (
        "trailer\n"
        f"<< /Size {size} /Root {CATALOG_OBJ_NUM} 0 R >>\n"
        f"startxref\n{xref_start}\n%%EOF"
    ).encode("ascii")

    data = b"".join([HEADER, *chunks, *xref, trailer])
    logger.debug("Assembled PDF: %d pages, %d objects, %d bytes", len(pages), len(objects), len(data))
    return AssembledDocument(
        pages=pages,
        objects=objects,
        offsets=offsets,
        xref_offset=xref_start,
        data=data,
    )


def build_pdf(lines: Sequence[str], geometry: Optional[PageGeometry] = None) -> bytes:
    return assemble(lines, geometry).data
