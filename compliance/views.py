"""
Compliance API Views.

REST API for the Driver Log Compliance engine:
- Health check
- Compliance configuration
- Shift report (hours, layover, meal breaks)
- Certification gap report
"""

import logging
from datetime import datetime
from django.conf import settings
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.decorators import api_view

from .serializers import (
    ShiftReportInputSerializer,
    CertificationReportInputSerializer,
    ShiftSerializer,
    DriverTotalsSerializer,
    CertificationVerdictSerializer,
    HealthCheckSerializer,
)
from .services import ComplianceConfig, ComplianceReportService, HomeProximity
from .services import ValidationError as LogValidationError
from .services.report_service import RouteTable

logger = logging.getLogger(__name__)

API_VERSION = '1.0.0'


def get_compliance_config() -> ComplianceConfig:
    """Thresholds from settings.COMPLIANCE_CONFIG over the defaults."""
    return ComplianceConfig.from_mapping(getattr(settings, 'COMPLIANCE_CONFIG', {}))


def _hours_minutes(delta):
    hours, minutes = divmod(int(delta.total_seconds() // 60), 60)
    return f"{hours}h{minutes:02d}m" if minutes else f"{hours}h"


def get_home_proximity(home_data=None):
    """Request home location, falling back to settings.HOME_LOCATION."""
    return HomeProximity.from_mapping(home_data or getattr(settings, 'HOME_LOCATION', None))


class HealthCheckView(APIView):
    """
    Health check endpoint for monitoring and load balancers.

    GET /api/health/
    """

    def get(self, request):
        """Return health status of the API."""
        data = {
            'status': 'healthy',
            'message': 'Driver Log Compliance API is running',
            'version': API_VERSION,
            'timestamp': datetime.now()
        }
        serializer = HealthCheckSerializer(data)
        return Response(serializer.data, status=status.HTTP_200_OK)


# =============================================================================
# Compliance Configuration - GET /api/config/compliance
# =============================================================================

class ComplianceConfigView(APIView):
    """
    GET /api/config/compliance - Get effective thresholds and assumptions
    """

    def get(self, request):
        """Get current compliance configuration and assumptions."""
        config = get_compliance_config()
        home = get_home_proximity()

        return Response({
            'rest': {
                'reset_hours': config.reset_hours,
                'near_reset_grace_minutes': config.near_reset_grace_minutes,
                'blip_max_minutes': config.blip_max_minutes,
                'description': (
                    f"{config.reset_hours:g}h OFF/SB ends a shift; "
                    f"{_hours_minutes(config.start_break)}+ ends it with a near-reset note"
                )
            },
            'diagnostics': {
                'max_shift_hours': config.max_shift_hours,
                'max_continuous_on_hours': config.max_continuous_on_hours,
                'description': 'Flags shifts that look like a missed OFF entry'
            },
            'layover': {
                'min_layover_hours': config.min_layover_hours,
                'home_location_configured': home is not None,
                'description': f"OFF periods of {config.min_layover_hours:g}h+ away from home count as layover"
            },
            'meal_breaks': {
                'meal_break_minutes': config.meal_break_minutes,
                'first_meal_required_hours': config.first_meal_required_hours,
                'first_meal_deadline_hours': config.first_meal_deadline_hours,
                'second_meal_required_hours': config.second_meal_required_hours,
                'second_meal_deadline_hours': config.second_meal_deadline_hours,
                'description': (
                    f"{config.meal_break_minutes:g}-min OFF before on-duty hour "
                    f"{config.first_meal_deadline_hours:g} past {config.first_meal_required_hours:g}h; "
                    f"a 2nd before hour {config.second_meal_deadline_hours:g} past "
                    f"{config.second_meal_required_hours:g}h"
                )
            },
            'certification': {
                'cert_window_minutes': config.cert_window_minutes,
                'lookback_days': config.lookback_days,
                'description': 'Prior duty days must be certified before the driver resumes work'
            },
            'assumptions': [
                'Log times are local wall-clock times',
                'Only OFF (not sleeper berth) counts as a meal break',
                'Without a home location every OFF period counts toward layover',
                f"Duty blips of {config.blip_max_minutes:g} minutes or less inside a rest block are ignored"
            ]
        }, status=status.HTTP_200_OK)


# =============================================================================
# Shift Report - POST /api/compliance/shifts
# =============================================================================

class ShiftReportView(APIView):
    """
    POST /api/compliance/shifts
    Detect shifts and compute hours and meal-break compliance per driver.
    """

    def post(self, request):
        """
        Request:
        {
            "batches": [
                {"Smith, John (12345)": [
                    {"Event": "Duty Status - ON", "Start Date": "2024-01-01", "Start Time": "6:00 AM"},
                    ...
                ]}
            ],
            "home": {"latitude": 36.74, "longitude": -119.78, "radius_miles": 5},
            "routes": [{"driver_id": "12345", "date": "2024-01-01", "route": "R-101"}]
        }

        Response:
        {
            "driverCount": 1,
            "shiftCount": 3,
            "shifts": [...],
            "totals": [...]
        }
        """
        input_serializer = ShiftReportInputSerializer(data=request.data)
        if not input_serializer.is_valid():
            logger.error(f"Shift report rejected: {input_serializer.errors}")
            return Response(
                {'error': 'Invalid request', 'details': input_serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        data = input_serializer.validated_data
        routes = RouteTable(data.get('routes'))
        service = ComplianceReportService(
            config=get_compliance_config(),
            is_near_home=get_home_proximity(data.get('home')),
            route_resolver=routes if len(routes) else None,
        )

        try:
            report = service.shift_report(data['batches'])
        except LogValidationError as e:
            logger.error(f"Shift report failed: {e}")
            return Response(
                {'error': 'Invalid log batches', 'details': str(e)},
                status=status.HTTP_400_BAD_REQUEST
            )

        return Response({
            'driverCount': report.driver_count,
            'shiftCount': len(report.shifts),
            'shifts': ShiftSerializer(report.shifts, many=True).data,
            'totals': DriverTotalsSerializer(report.totals, many=True).data,
        }, status=status.HTTP_200_OK)


# =============================================================================
# Certification Gap Report - POST /api/compliance/certifications
# =============================================================================

class CertificationReportView(APIView):
    """
    POST /api/compliance/certifications
    Check that prior duty days were certified before each shift start.
    """

    def post(self, request):
        """
        Request:
        {
            "batches": [{"Smith, John (12345)": [...]}],
            "as_of": "2024-03-01T00:00:00"
        }

        Response:
        {
            "verdictCount": 4,
            "disqualifiedCount": 1,
            "verdicts": [...]
        }
        """
        input_serializer = CertificationReportInputSerializer(data=request.data)
        if not input_serializer.is_valid():
            logger.error(f"Certification report rejected: {input_serializer.errors}")
            return Response(
                {'error': 'Invalid request', 'details': input_serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        data = input_serializer.validated_data
        service = ComplianceReportService(config=get_compliance_config())

        try:
            verdicts = service.certification_report(data['batches'], as_of=data.get('as_of'))
        except LogValidationError as e:
            logger.error(f"Certification report failed: {e}")
            return Response(
                {'error': 'Invalid log batches', 'details': str(e)},
                status=status.HTTP_400_BAD_REQUEST
            )

        return Response({
            'verdictCount': len(verdicts),
            'disqualifiedCount': sum(1 for v in verdicts if not v.qualified),
            'verdicts': CertificationVerdictSerializer(verdicts, many=True).data,
        }, status=status.HTTP_200_OK)


@api_view(['GET'])
def api_root(request):
    """
    GET /api/
    API documentation and endpoint listing.
    """
    return Response({
        'name': 'Driver Log Compliance API',
        'version': API_VERSION,
        'description': 'Shift, hours, meal-break and certification checks for driver duty logs',
        'endpoints': {
            'health': {
                'GET /api/health/': 'Health check'
            },
            'config': {
                'GET /api/config/compliance': 'Get compliance thresholds and assumptions'
            },
            'compliance': {
                'POST /api/compliance/shifts': 'Shift report with hours and meal-break compliance',
                'POST /api/compliance/certifications': 'Certification gap report'
            }
        }
    })
