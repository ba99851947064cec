"""Flatten a report snapshot into printable lines and CSV rows.

Both renderings walk the sections in the same order:
summary, highlights, metrics, analysis (overview, key points, structured
plan, opportunities, risks, attribution, confidence), spreadsheet, chart,
actions. Empty sections are skipped without a header.
"""
from __future__ import annotations

import math
from typing import Iterator, List, Optional, Tuple

from ..types import Analysis, Chart, Report

DEFAULT_SUMMARY = "Start from a spreadsheet and we'll generate a report, charts, and export-ready data."
DEFAULT_OVERVIEW = "Generate a report to see the strategic synthesis and data attribution layer."
BULLET = "• "
CELL_SEPARATOR = " | "

ANALYSIS_LISTS = (
    ("Key points", "key_points"),
    ("Structured plan", "structured_plan"),
    ("Opportunities", "opportunities"),
    ("Risks", "risks"),
)


def format_chart_value(value) -> str:
    """Print numbers the way the browser client does: ``12.0`` -> ``12``."""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def _chart_points(chart: Chart) -> Iterator[Tuple[str, str]]:
    for index, label in enumerate(chart.labels):
        value = chart.values[index] if index < len(chart.values) else 0
        yield label, format_chart_value(value)


def _summary(report: Report) -> str:
    return report.summary or DEFAULT_SUMMARY


def _overview(analysis: Optional[Analysis]) -> str:
    if analysis is None or not analysis.overview:
        return DEFAULT_OVERVIEW
    return analysis.overview


def build_report_lines(report: Report) -> List[str]:
    lines = ["Report summary", _summary(report)]
    if report.highlights:
        lines.append("Highlights")
        lines.extend(f"{BULLET}{item}" for item in report.highlights)
    if report.metrics:
        lines.append("Metrics")
        lines.extend(f"{metric.label}: {metric.value}" for metric in report.metrics)

    analysis = report.analysis
    lines.append("")
    lines.append("Strategic analysis layer")
    lines.append(_overview(analysis))
    if analysis is not None:
        for title, attr in ANALYSIS_LISTS:
            items = getattr(analysis, attr)
            if items:
                lines.append(title)
                lines.extend(f"{BULLET}{item}" for item in items)
        if analysis.data_attribution:
            lines.append("Data attribution")
            lines.extend(f"{BULLET}{item.source}: {item.notes}" for item in analysis.data_attribution)
        if analysis.confidence:
            lines.append(f"Confidence: {analysis.confidence}")

    sheet = report.spreadsheet
    lines.append("")
    lines.append(f"{sheet.name} (Last updated {sheet.last_updated})")
    lines.extend(CELL_SEPARATOR.join(row) for row in sheet.rows)

    lines.append("")
    lines.append(report.chart.title)
    lines.extend(f"{label}: {value}" for label, value in _chart_points(report.chart))

    if report.actions:
        lines.append("")
        lines.append("AI actions")
        lines.extend(f"{BULLET}{action}" for action in report.actions)
    return lines


def build_report_rows(report: Report) -> List[List[str]]:
    rows = [["Report summary", _summary(report)]]
    if report.highlights:
        rows.append(["Highlights"])
        rows.extend([item] for item in report.highlights)
    if report.metrics:
        rows.append(["Metrics"])
        rows.extend([metric.label, metric.value] for metric in report.metrics)

    analysis = report.analysis
    rows.append([])
    rows.append(["Strategic analysis layer", _overview(analysis)])
    if analysis is not None:
        for title, attr in ANALYSIS_LISTS:
            items = getattr(analysis, attr)
            if items:
                rows.append([title])
                rows.extend([item] for item in items)
        if analysis.data_attribution:
            rows.append(["Data attribution"])
            rows.extend([f"{item.source}: {item.notes}"] for item in analysis.data_attribution)
        if analysis.confidence:
            rows.append(["Confidence", analysis.confidence])

    sheet = report.spreadsheet
    rows.append([])
    rows.append([sheet.name, f"Last updated {sheet.last_updated}"])
    rows.append([])
    # Copied row by row; the snapshot stays untouched.
    rows.extend(list(row) for row in sheet.rows)

    rows.append([])
    rows.append(["Chart", report.chart.title])
    rows.append(["Label", "Value"])
    rows.extend([label, value] for label, value in _chart_points(report.chart))

    if report.actions:
        rows.append([])
        rows.append(["AI actions"])
        rows.extend([action] for action in report.actions)
    return rows
