"""Plain value objects for a report snapshot handed over by the client."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class Metric:
    label: str
    value: str


@dataclass(frozen=True)
class Attribution:
    source: str
    notes: str


@dataclass(frozen=True)
class Analysis:
    overview: str = ""
    key_points: List[str] = field(default_factory=list)
    structured_plan: List[str] = field(default_factory=list)
    opportunities: List[str] = field(default_factory=list)
    risks: List[str] = field(default_factory=list)
    data_attribution: List[Attribution] = field(default_factory=list)
    confidence: str = ""


@dataclass(frozen=True)
class Spreadsheet:
    name: str
    last_updated: str = ""
    rows: List[List[str]] = field(default_factory=list)


@dataclass(frozen=True)
class Chart:
    title: str = ""
    labels: List[str] = field(default_factory=list)
    values: List[float] = field(default_factory=list)


@dataclass(frozen=True)
class Report:
    spreadsheet: Spreadsheet
    summary: str = ""
    highlights: List[str] = field(default_factory=list)
    metrics: List[Metric] = field(default_factory=list)
    analysis: Optional[Analysis] = None
    chart: Chart = field(default_factory=Chart)
    actions: List[str] = field(default_factory=list)
