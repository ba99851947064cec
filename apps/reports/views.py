import logging
from dataclasses import replace

from django.http import HttpResponse
from django.utils.http import content_disposition_header
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .exceptions import GeometryError
from .serializers import DocumentExportSerializer, GeometrySerializer, ReportSerializer
from .services.export import (
    CSV_CONTENT_TYPE,
    PDF_CONTENT_TYPE,
    default_geometry,
    export_delimited,
    export_document,
)

logger = logging.getLogger(__name__)


def _attachment(content: bytes, filename: str, content_type: str) -> HttpResponse:
    response = HttpResponse(content, content_type=content_type)
    response["Content-Disposition"] = content_disposition_header(True, filename)
    return response


@extend_schema(
    request=ReportSerializer,
    responses={200: OpenApiResponse(OpenApiTypes.BINARY, description="Quoted CSV attachment")},
)
@api_view(["POST"])
def export_csv(request):
    serializer = ReportSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    content, filename = export_delimited(serializer.to_report())
    logger.info("CSV export %s (%d bytes)", filename, len(content))
    return _attachment(content, filename, CSV_CONTENT_TYPE)


@extend_schema(
    request=DocumentExportSerializer,
    responses={
        200: OpenApiResponse(OpenApiTypes.BINARY, description="PDF attachment"),
        400: OpenApiResponse(description="Invalid report payload or page geometry"),
    },
)
@api_view(["POST"])
def export_pdf(request):
    serializer = DocumentExportSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    overrides = serializer.validated_data.get("geometry") or {}
    try:
        geometry = replace(default_geometry(), **overrides).validate()
    except GeometryError as exc:
        logger.warning("Rejected PDF export: %s", exc)
        return Response(
            {"detail": str(exc), "field": exc.field, "value": exc.value},
            status=status.HTTP_400_BAD_REQUEST,
        )
    content, filename = export_document(serializer.to_report(), geometry)
    logger.info("PDF export %s (%d bytes)", filename, len(content))
    return _attachment(content, filename, PDF_CONTENT_TYPE)


@extend_schema(responses=GeometrySerializer)
@api_view(["GET"])
def geometry_defaults(request):
    try:
        geometry = default_geometry().validate()
    except GeometryError as exc:
        logger.error("REPORT_EXPORT settings are invalid: %s", exc)
        raise
    return Response(GeometrySerializer(geometry).data)
