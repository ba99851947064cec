from django.urls import path

from . import views

urlpatterns = [
    path("export/csv/", views.export_csv, name="reports_export_csv"),
    path("export/pdf/", views.export_pdf, name="reports_export_pdf"),
    path("geometry/", views.geometry_defaults, name="reports_geometry"),
]
