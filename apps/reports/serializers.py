from rest_framework import serializers

from .types import Analysis, Attribution, Chart, Metric, Report, Spreadsheet


def _text(**kwargs):
    kwargs.setdefault("allow_blank", True)
    return serializers.CharField(trim_whitespace=False, **kwargs)


def _text_list(**kwargs):
    kwargs.setdefault("required", False)
    kwargs.setdefault("default", list)
    return serializers.ListField(child=_text(), **kwargs)


class MetricSerializer(serializers.Serializer):
    label = _text()
    value = _text()


class AttributionSerializer(serializers.Serializer):
    source = _text()
    notes = _text(required=False, default="")


class AnalysisSerializer(serializers.Serializer):
    overview = _text(required=False, default="")
    keyPoints = _text_list(source="key_points")
    structuredPlan = _text_list(source="structured_plan")
    opportunities = _text_list()
    risks = _text_list()
    dataAttribution = AttributionSerializer(many=True, required=False, default=list, source="data_attribution")
    confidence = _text(required=False, default="")


class SpreadsheetSerializer(serializers.Serializer):
    name = _text(allow_blank=False)
    lastUpdated = _text(required=False, default="", source="last_updated")
    rows = serializers.ListField(child=serializers.ListField(child=_text()), required=False, default=list)


class ChartSerializer(serializers.Serializer):
    title = _text(required=False, default="")
    labels = _text_list()
    values = serializers.ListField(child=serializers.FloatField(), required=False, default=list)


class ReportSerializer(serializers.Serializer):
    summary = _text(required=False, default="")
    highlights = _text_list()
    metrics = MetricSerializer(many=True, required=False, default=list)
    analysis = AnalysisSerializer(required=False, allow_null=True, default=None)
    spreadsheet = SpreadsheetSerializer()
    chart = ChartSerializer(required=False, default=dict)
    actions = _text_list()

    def to_report(self) -> Report:
        data = self.validated_data
        analysis = data.get("analysis")
        if analysis is not None:
            analysis = Analysis(
                overview=analysis["overview"],
                key_points=list(analysis["key_points"]),
                structured_plan=list(analysis["structured_plan"]),
                opportunities=list(analysis["opportunities"]),
                risks=list(analysis["risks"]),
                data_attribution=[Attribution(**item) for item in analysis["data_attribution"]],
                confidence=analysis["confidence"],
            )
        chart = data.get("chart") or {}
        return Report(
            summary=data["summary"],
            highlights=list(data["highlights"]),
            metrics=[Metric(**item) for item in data["metrics"]],
            analysis=analysis,
            spreadsheet=Spreadsheet(**data["spreadsheet"]),
            chart=Chart(
                title=chart.get("title", ""),
                labels=list(chart.get("labels", [])),
                values=list(chart.get("values", [])),
            ),
            actions=list(data["actions"]),
        )


class GeometrySerializer(serializers.Serializer):
    """Overrides for the default page geometry; range checks happen in ``PageGeometry.validate``."""

    pageWidth = serializers.FloatField(required=False, source="page_width")
    pageHeight = serializers.FloatField(required=False, source="page_height")
    margin = serializers.FloatField(required=False)
    linePitch = serializers.FloatField(required=False, source="line_pitch")
    fontSize = serializers.FloatField(required=False, source="font_size")
    maxChars = serializers.IntegerField(required=False, source="max_chars")
    linesPerPage = serializers.IntegerField(read_only=True, source="lines_per_page")


class DocumentExportSerializer(ReportSerializer):
    geometry = GeometrySerializer(required=False)
