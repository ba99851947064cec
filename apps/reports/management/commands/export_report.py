import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from apps.reports.exceptions import GeometryError
from apps.reports.serializers import ReportSerializer
from apps.reports.services.export import export_delimited, export_document
from apps.reports.types import Chart, Report, Spreadsheet

DEMO_SHEETS = {
    "market-insights": Spreadsheet(
        name="Market Insights",
        last_updated="Today · 2:14 PM",
        rows=[
            ["Segment", "Revenue", "Growth", "Notes"],
            ["SMB", "$180,000", "12%", "High retention"],
            ["Mid-Market", "$420,000", "18%", "Upsell ready"],
            ["Enterprise", "$960,000", "9%", "Longer sales cycle"],
        ],
    ),
    "campaign-tracker": Spreadsheet(
        name="Campaign Tracker",
        last_updated="Yesterday · 6:47 PM",
        rows=[
            ["Channel", "Spend", "Leads", "CPA"],
            ["LinkedIn", "$24,000", "210", "$114"],
            ["Search", "$18,500", "300", "$62"],
            ["Events", "$12,400", "85", "$146"],
        ],
    ),
}


def _amount(cell: str) -> float:
    digits = "".join(ch for ch in cell if ch.isdigit() or ch == ".")
    try:
        return float(digits)
    except ValueError:
        return 0.0


def demo_report(key: str) -> Report:
    sheet = DEMO_SHEETS[key]
    header, *body = sheet.rows
    chart = Chart(
        title=f"{header[1]} by {header[0].lower()}",
        labels=[row[0] for row in body],
        values=[_amount(row[1]) for row in body],
    )
    return Report(spreadsheet=sheet, chart=chart)


class Command(BaseCommand):
    help = "Export a report snapshot (JSON file or built-in demo sheet) to CSV and/or PDF files."

    def add_arguments(self, parser):
        parser.add_argument("--input", help="Path to a report JSON file in the API payload format.")
        parser.add_argument("--demo", choices=sorted(DEMO_SHEETS), default="market-insights")
        parser.add_argument("--format", choices=["csv", "pdf", "both"], default="both")
        parser.add_argument("--output-dir", default=".")

    def _load(self, path: str) -> Report:
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CommandError(f"Cannot read report from {path}: {exc}") from exc
        serializer = ReportSerializer(data=payload)
        if not serializer.is_valid():
            raise CommandError(f"Invalid report in {path}: {json.dumps(serializer.errors)}")
        return serializer.to_report()

    def handle(self, *args, **options):
        report = self._load(options["input"]) if options["input"] else demo_report(options["demo"])
        output_dir = Path(options["output_dir"])
        output_dir.mkdir(parents=True, exist_ok=True)

        exports = []
        if options["format"] in ("csv", "both"):
            exports.append(export_delimited(report))
        if options["format"] in ("pdf", "both"):
            try:
                exports.append(export_document(report))
            except GeometryError as exc:
                raise CommandError(f"REPORT_EXPORT geometry is invalid: {exc}") from exc

        for content, filename in exports:
            target = output_dir / Path(filename).name
            try:
                target.write_bytes(content)
            except OSError as exc:
                raise CommandError(f"Cannot write {target}: {exc}") from exc
            self.stdout.write(self.style.SUCCESS(f"Wrote {target} ({len(content)} bytes)"))
