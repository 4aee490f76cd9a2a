"""
URL configuration for Driver Log Compliance project.

API URL structure:
- /api/ - API root
- /api/health/ - Health check
- /api/config/compliance - Compliance thresholds
- /api/compliance/ - Shift and certification reports
"""

from django.urls import path, include
from compliance.views import (
    HealthCheckView,
    api_root,
    ComplianceConfigView,
)

urlpatterns = [
    # API root - Documentation
    path('api/', api_root, name='api_root'),

    # Health check endpoint
    path('api/health/', HealthCheckView.as_view(), name='health_check'),

    # ==========================================================================
    # Compliance Configuration
    # ==========================================================================
    path('api/config/compliance', ComplianceConfigView.as_view(), name='config_compliance'),

    # ==========================================================================
    # Compliance Reports - Uses compliance app urls
    # ==========================================================================
    path('api/compliance/', include('compliance.urls', namespace='compliance')),
]
