"""
Services package for the Driver Log Compliance engine.

Contains the compliance pipeline, kept separate from the HTTP views.
"""

from .events import ComplianceError, DutyStatus, ValidationError
from .shift_service import ComplianceConfig
from .hours_service import HomeProximity
from .certification_service import CertificationGapService
from .report_service import ComplianceReportService

__all__ = [
    'ComplianceError',
    'ValidationError',
    'DutyStatus',
    'ComplianceConfig',
    'HomeProximity',
    'CertificationGapService',
    'ComplianceReportService',
]
