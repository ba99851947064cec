import io
import json
import math
import re
import tempfile
from pathlib import Path
from urllib.parse import quote

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, override_settings
from pypdf import PdfReader
from rest_framework.test import APITestCase

from .exceptions import GeometryError
from .services.export import export_delimited, export_document, suggested_filename
from .services.flatten import DEFAULT_OVERVIEW, DEFAULT_SUMMARY, build_report_lines, build_report_rows
from .types import Analysis, Attribution, Chart, Metric, Report, Spreadsheet
from .utils.delimited import encode_rows
from .utils.pdf import PageGeometry, assemble, build_pdf, paginate, wrap_line

THREE_LINES = PageGeometry(page_height=192, margin=72, line_pitch=16)


def _market_report(**overrides):
    fields = {
        "spreadsheet": Spreadsheet(
            name="Market Insights",
            last_updated="Today · 2:14 PM",
            rows=[
                ["Segment", "Revenue", "Growth", "Notes"],
                ["SMB", "$180,000", "12%", "High retention"],
                ["Enterprise", "$960,000", "9%", "Longer sales cycle"],
            ],
        ),
        "chart": Chart(title="Revenue by segment", labels=["SMB", "Enterprise"], values=[180000.0, 960000.5]),
    }
    fields.update(overrides)
    return Report(**fields)


def _full_report():
    return _market_report(
        summary="Enterprise carries revenue.",
        highlights=["Mid-market grows fastest"],
        metrics=[Metric("ARR", "$1.56M")],
        analysis=Analysis(
            overview="Revenue is concentrated.",
            key_points=["Enterprise is 60%"],
            structured_plan=["Expand SMB"],
            opportunities=["Upsell"],
            risks=["Churn"],
            data_attribution=[Attribution("CRM export", "Q1 snapshot")],
            confidence="Medium",
        ),
        actions=["Formatted table"],
    )


def _page_texts(data: bytes):
    reader = PdfReader(io.BytesIO(data), strict=True)
    return [
        [line for line in page.extract_text().splitlines() if line.strip()]
        for page in reader.pages
    ]


class WrapLineTests(SimpleTestCase):
    def test_respects_width(self):
        text = "the quick brown fox jumps over the lazy dog " * 5
        for width in (1, 5, 10, 17, 90):
            for part in wrap_line(text, width):
                if len(part) > width:
                    self.assertNotIn(" ", part)
                    self.assertIn(part, text.split())

    def test_greedy_packing(self):
        self.assertEqual(wrap_line("aa bb cc dd", 5), ["aa bb", "cc dd"])
        self.assertEqual(wrap_line("aa bb cc", 4), ["aa", "bb", "cc"])

    def test_long_word_not_split(self):
        word = "x" * 30
        self.assertEqual(wrap_line(f"a {word} b", 10), ["a", word, "b"])

    def test_empty_and_blank_lines(self):
        self.assertEqual(wrap_line("", 10), [""])
        self.assertEqual(wrap_line("   \t ", 10), [""])

    def test_tokens_preserved(self):
        text = "Segment |  Revenue | Growth-rate | Notes on   retention"
        parts = wrap_line(text, 12)
        self.assertEqual(" ".join(parts).split(), text.split())

    def test_non_positive_width(self):
        with self.assertRaises(GeometryError) as ctx:
            wrap_line("abc", 0)
        self.assertEqual(ctx.exception.field, "max_chars")


class PaginateTests(SimpleTestCase):
    def test_fixed_page_size(self):
        lines = [str(i) for i in range(10)]
        pages = paginate(lines, 3)
        self.assertEqual([len(page) for page in pages], [3, 3, 3, 1])
        self.assertEqual(sum(pages, []), lines)

    def test_exact_multiple(self):
        self.assertEqual([len(page) for page in paginate(["a"] * 6, 3)], [3, 3])

    def test_empty_input_gives_one_blank_page(self):
        self.assertEqual(paginate([], 5), [[""]])

    def test_rejects_zero_lines_per_page(self):
        with self.assertRaises(GeometryError):
            paginate(["a"], 0)


class PageGeometryTests(SimpleTestCase):
    def test_default_lines_per_page(self):
        self.assertEqual(PageGeometry().lines_per_page, 40)
        self.assertEqual(THREE_LINES.lines_per_page, 3)

    def test_non_positive_fields(self):
        for field in ("page_height", "margin", "line_pitch", "font_size", "max_chars"):
            with self.subTest(field=field):
                with self.assertRaises(GeometryError) as ctx:
                    PageGeometry(**{field: 0}).validate()
                self.assertEqual(ctx.exception.field, field)

    def test_non_finite_fields(self):
        for field in ("page_height", "line_pitch", "margin"):
            for value in (float("inf"), float("nan")):
                with self.subTest(field=field, value=value):
                    with self.assertRaises(GeometryError) as ctx:
                        PageGeometry(**{field: value}).validate()
                    self.assertEqual(ctx.exception.field, field)

    def test_margin_wider_than_page(self):
        with self.assertRaises(GeometryError) as ctx:
            PageGeometry(page_width=100, margin=100, page_height=2000).validate()
        self.assertEqual(ctx.exception.field, "margin")

    def test_margins_swallow_page(self):
        with self.assertRaises(GeometryError) as ctx:
            PageGeometry(page_height=150, margin=72, line_pitch=16).validate()
        self.assertEqual(ctx.exception.field, "lines_per_page")
        self.assertEqual(ctx.exception.value, 0)


class AssembleTests(SimpleTestCase):
    def test_empty_document_has_one_page(self):
        doc = assemble([])
        self.assertEqual(doc.pages, [[""]])
        self.assertEqual(len(_page_texts(doc.data)), 1)

    def test_object_numbering(self):
        doc = assemble([f"line {i}" for i in range(7)], THREE_LINES)
        self.assertEqual(doc.page_count, 3)
        self.assertEqual([obj.number for obj in doc.objects], list(range(1, 10)))
        self.assertIn(b"/Kids [3 0 R 5 0 R 7 0 R] /Count 3", doc.objects[1].body)
        self.assertIn(b"/Contents 6 0 R", doc.objects[4].body)
        self.assertIn(b"/F1 9 0 R", doc.objects[2].body)
        self.assertIn(b"/Type /Font", doc.objects[-1].body)

    def test_xref_offsets_point_at_objects(self):
        doc = assemble(["Café · naïve (draft) \\ résumé • ✓"] * 5, THREE_LINES)
        data = doc.data
        self.assertEqual(len(doc.offsets), len(doc.objects) + 1)
        self.assertEqual(doc.offsets[0], 0)
        for number, offset in enumerate(doc.offsets[1:], start=1):
            self.assertTrue(data[offset:].startswith(f"{number} 0 obj\n".encode()))
        self.assertEqual(doc.offsets[1:], sorted(set(doc.offsets[1:])))
        self.assertTrue(data[doc.xref_offset:].startswith(b"xref\n0 %d\n" % (len(doc.objects) + 1)))
        match = re.search(rb"startxref\n(\d+)\n%%EOF$", data)
        self.assertEqual(int(match.group(1)), doc.xref_offset)

    def test_xref_table_layout(self):
        doc = assemble(["one", "two"])
        table = doc.data[doc.xref_offset:].split(b"trailer")[0].split(b"\n")
        self.assertEqual(table[1], b"0 6")
        self.assertEqual(table[2], b"0000000000 65535 f ")
        self.assertEqual(table[3:8], [b"%010d 00000 n " % offset for offset in doc.offsets[1:]])
        self.assertIn(b"<< /Size 6 /Root 1 0 R >>", doc.data)

    def test_stream_length_matches(self):
        doc = assemble(["(a) \\ b", "é"])
        body = doc.objects[3].body
        declared = int(re.match(rb"<< /Length (\d+) >>", body).group(1))
        stream = body.split(b"stream\n", 1)[1].rsplit(b"\nendstream", 1)[0]
        self.assertEqual(len(stream), declared)

    def test_content_stream_positions_and_escaping(self):
        doc = assemble(["a (b) c\\d", "second"])
        stream = doc.objects[3].body
        self.assertIn(b"BT /F1 12 Tf 72 720 Td (a \\(b\\) c\\\\d) Tj ET", stream)
        self.assertIn(b"BT /F1 12 Tf 72 704 Td (second) Tj ET", stream)

    def test_non_ascii_written_as_octal(self):
        data = build_pdf(["• Today · 2:14 PM"])
        data.decode("ascii")
        self.assertIn(b"(\\225 Today \\267 2:14 PM)", data)

    def test_round_trip_text(self):
        lines = build_report_lines(_market_report())
        expected = [line for line in lines if line]
        data = build_pdf(lines, THREE_LINES)
        pages = _page_texts(data)
        self.assertEqual(len(pages), math.ceil(len(lines) / 3))
        self.assertEqual([line.strip() for page in pages for line in page], expected)
        self.assertEqual(pages[0], ["Report summary", DEFAULT_SUMMARY])

    def test_deterministic(self):
        lines = build_report_lines(_full_report())
        self.assertEqual(build_pdf(lines, THREE_LINES), build_pdf(lines, THREE_LINES))

    def test_geometry_error_before_output(self):
        with self.assertRaises(GeometryError):
            build_pdf(["a"], PageGeometry(line_pitch=-1))


class EncodeRowsTests(SimpleTestCase):
    def test_quotes_and_commas(self):
        self.assertEqual(
            encode_rows([["Acme, Inc.", 'He said "hi"']]),
            '"Acme, Inc.","He said ""hi"""',
        )

    def test_ragged_rows(self):
        text = encode_rows([["a"], ["b", "c", "d"], []])
        self.assertEqual(text, '"a"\n"b","c","d"\n')
        self.assertEqual([line.count(",") for line in text.split("\n")], [0, 2, 0])

    def test_embedded_newline_stays_quoted(self):
        self.assertEqual(encode_rows([["line1\nline2", ""]]), '"line1\nline2",""')


class FlattenTests(SimpleTestCase):
    def test_minimal_report(self):
        report = _market_report()
        self.assertEqual(
            build_report_lines(report),
            [
                "Report summary",
                DEFAULT_SUMMARY,
                "",
                "Strategic analysis layer",
                DEFAULT_OVERVIEW,
                "",
                "Market Insights (Last updated Today · 2:14 PM)",
                "Segment | Revenue | Growth | Notes",
                "SMB | $180,000 | 12% | High retention",
                "Enterprise | $960,000 | 9% | Longer sales cycle",
                "",
                "Revenue by segment",
                "SMB: 180000",
                "Enterprise: 960000.5",
            ],
        )

    def test_full_report_lines(self):
        lines = build_report_lines(_full_report())
        self.assertEqual(lines[:7], [
            "Report summary",
            "Enterprise carries revenue.",
            "Highlights",
            "• Mid-market grows fastest",
            "Metrics",
            "ARR: $1.56M",
            "",
        ])
        self.assertIn("• CRM export: Q1 snapshot", lines)
        self.assertIn("Confidence: Medium", lines)
        self.assertEqual(lines[-3:], ["", "AI actions", "• Formatted table"])
        headers = ["Key points", "Structured plan", "Opportunities", "Risks", "Data attribution"]
        self.assertEqual([lines.index(h) for h in headers], sorted(lines.index(h) for h in headers))

    def test_full_report_rows(self):
        rows = build_report_rows(_full_report())
        self.assertEqual(rows[0], ["Report summary", "Enterprise carries revenue."])
        self.assertIn(["ARR", "$1.56M"], rows)
        self.assertIn(["Confidence", "Medium"], rows)
        self.assertIn(["Market Insights", "Last updated Today · 2:14 PM"], rows)
        start = rows.index(["Chart", "Revenue by segment"])
        self.assertEqual(rows[start + 1:start + 4], [["Label", "Value"], ["SMB", "180000"], ["Enterprise", "960000.5"]])
        self.assertEqual(rows[-3:], [[], ["AI actions"], ["Formatted table"]])

    def test_missing_chart_values_default_to_zero(self):
        report = _market_report(chart=Chart(title="t", labels=["a", "b"], values=[1.0]))
        self.assertEqual(build_report_lines(report)[-2:], ["a: 1", "b: 0"])

    def test_does_not_mutate_input(self):
        report = _full_report()
        rows = build_report_rows(report)
        for row in rows:
            row.append("x")
        self.assertEqual(report.spreadsheet.rows[0], ["Segment", "Revenue", "Growth", "Notes"])


class ExportTests(SimpleTestCase):
    def test_filenames(self):
        self.assertEqual(suggested_filename("Market Insights", "pdf"), "market-insights.pdf")
        self.assertEqual(suggested_filename("Q1  Budget\tPlan", "csv"), "q1-budget-plan.csv")
        self.assertEqual(suggested_filename("  ", "csv"), "report.csv")
        self.assertEqual(suggested_filename("../escaped", "csv"), "..-escaped.csv")
        self.assertEqual(suggested_filename("Q1/Q2\\Q3", "pdf"), "q1-q2-q3.pdf")

    def test_export_delimited(self):
        content, filename = export_delimited(_market_report())
        self.assertEqual(filename, "market-insights.csv")
        self.assertFalse(content.startswith(b"\xef\xbb\xbf"))
        text = content.decode("utf-8")
        self.assertTrue(text.startswith(f'"Report summary","{DEFAULT_SUMMARY}"\n\n'))
        self.assertTrue(text.endswith('"Enterprise","960000.5"'))

    @override_settings(REPORT_EXPORT={"page_height": 192, "margin": 72, "line_pitch": 16})
    def test_export_document_uses_settings_geometry(self):
        content, filename = export_document(_market_report())
        self.assertEqual(filename, "market-insights.pdf")
        self.assertEqual(len(_page_texts(content)), 5)

    def test_export_document_explicit_geometry(self):
        content, _ = export_document(_full_report(), PageGeometry(max_chars=10))
        self.assertTrue(content.startswith(b"%PDF-1.4\n"))
        self.assertTrue(content.endswith(b"%%EOF"))


class ExportApiTests(APITestCase):
    payload = {
        "summary": "Enterprise carries revenue.",
        "highlights": ["Mid-market grows fastest"],
        "metrics": [{"label": "ARR", "value": "$1.56M"}],
        "analysis": {
            "overview": "Revenue is concentrated.",
            "keyPoints": ["Enterprise is 60%"],
            "dataAttribution": [{"source": "CRM export", "notes": "Q1 snapshot"}],
            "confidence": "Medium",
        },
        "spreadsheet": {
            "name": "Market Insights",
            "lastUpdated": "Today · 2:14 PM",
            "rows": [["Segment", "Revenue"], ["SMB", "$180,000"]],
        },
        "chart": {"title": "Revenue", "labels": ["SMB"], "values": [180000]},
        "actions": ["Formatted table"],
    }

    def test_csv_export(self):
        resp = self.client.post("/api/reports/export/csv/", self.payload, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp["Content-Type"], "text/csv; charset=utf-8")
        self.assertEqual(resp["Content-Disposition"], 'attachment; filename="market-insights.csv"')
        text = resp.content.decode("utf-8")
        self.assertIn('"Key points"\n"Enterprise is 60%"', text)
        self.assertIn('"SMB","180000"', text)

    def test_pdf_export_with_geometry(self):
        payload = {**self.payload, "geometry": {"pageHeight": 192, "margin": 72, "linePitch": 16}}
        resp = self.client.post("/api/reports/export/pdf/", payload, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp["Content-Type"], "application/pdf")
        self.assertEqual(resp["Content-Disposition"], 'attachment; filename="market-insights.pdf"')
        pages = _page_texts(resp.content)
        self.assertTrue(all(len(page) <= 3 for page in pages))
        self.assertEqual(pages[0][0], "Report summary")

    def test_pdf_export_rejects_degenerate_geometry(self):
        payload = {**self.payload, "geometry": {"margin": 400}}
        resp = self.client.post("/api/reports/export/pdf/", payload, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["field"], "lines_per_page")

    def test_missing_spreadsheet(self):
        resp = self.client.post("/api/reports/export/csv/", {"summary": "x"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("spreadsheet", resp.data)

    def test_optional_sections_absent(self):
        payload = {"spreadsheet": {"name": "Empty"}}
        resp = self.client.post("/api/reports/export/pdf/", payload, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp["Content-Disposition"], 'attachment; filename="empty.pdf"')

    def test_attachment_names_are_quoted(self):
        payload = {**self.payload, "spreadsheet": {"name": "Q1 \"Plan\""}}
        resp = self.client.post("/api/reports/export/csv/", payload, format="json")
        self.assertEqual(resp["Content-Disposition"], 'attachment; filename="q1-\\"plan\\".csv"')

        payload = {**self.payload, "spreadsheet": {"name": "Отчёт продаж"}}
        resp = self.client.post("/api/reports/export/pdf/", payload, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp["Content-Disposition"],
            "attachment; filename*=utf-8''" + quote("отчёт-продаж.pdf"),
        )

    def test_geometry_defaults(self):
        resp = self.client.get("/api/reports/geometry/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["linesPerPage"], 40)
        self.assertEqual(resp.data["maxChars"], 90)


class ExportReportCommandTests(SimpleTestCase):
    def test_demo_export(self):
        with tempfile.TemporaryDirectory() as tmp:
            out = io.StringIO()
            call_command("export_report", "--demo", "campaign-tracker", "--output-dir", tmp, stdout=out)
            csv_path = Path(tmp) / "campaign-tracker.csv"
            pdf_path = Path(tmp) / "campaign-tracker.pdf"
            self.assertTrue(csv_path.exists())
            self.assertIn('"LinkedIn","24000"', csv_path.read_text(encoding="utf-8"))
            self.assertEqual(len(_page_texts(pdf_path.read_bytes())), 1)
            self.assertIn("Wrote", out.getvalue())

    def test_input_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            source = Path(tmp) / "report.json"
            source.write_text('{"spreadsheet": {"name": "Q1 Plan"}}', encoding="utf-8")
            call_command("export_report", "--input", str(source), "--format", "csv", "--output-dir", tmp, stdout=io.StringIO())
            self.assertTrue((Path(tmp) / "q1-plan.csv").exists())
            self.assertFalse((Path(tmp) / "q1-plan.pdf").exists())

    def test_sheet_name_cannot_leave_output_dir(self):
        with tempfile.TemporaryDirectory() as tmp:
            out_dir = Path(tmp) / "out"
            for name in ("../escaped", "Q1/Q2"):
                source = Path(tmp) / "report.json"
                source.write_text(json.dumps({"spreadsheet": {"name": name}}), encoding="utf-8")
                call_command(
                    "export_report", "--input", str(source), "--format", "csv",
                    "--output-dir", str(out_dir), stdout=io.StringIO(),
                )
            self.assertEqual(sorted(p.name for p in out_dir.iterdir()), ["..-escaped.csv", "q1-q2.csv"])
            self.assertFalse((Path(tmp) / "escaped.csv").exists())

    def test_write_failure_is_command_error(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "market-insights.csv").mkdir()
            with self.assertRaises(CommandError):
                call_command("export_report", "--format", "csv", "--output-dir", tmp, stdout=io.StringIO())
