"""
URL configuration for compliance app.
"""

from django.urls import path
from .views import (
    ShiftReportView,
    CertificationReportView,
)

app_name = 'compliance'

urlpatterns = [
    # POST /api/compliance/shifts - Shift report
    path('shifts', ShiftReportView.as_view(), name='shift_report'),

    # POST /api/compliance/certifications - Certification gap report
    path('certifications', CertificationReportView.as_view(), name='certification_report'),
]
