"""
Compliance Report Service.

Runs the full pipeline for a set of log batches:

    raw records -> driver logs -> shift boundaries -> {hours, meal breaks}
                                                   -> certification verdicts

Each driver is processed independently; output is ordered by driver and
shift start so that identical input yields identical reports regardless of
batch order.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .certification_service import CertificationGapService, CertificationVerdict
from .hours_service import NearHomePredicate, aggregate_hours
from .meal_break_service import MealBreakVerdict, evaluate_meal_breaks
from .shift_service import ComplianceConfig, ShiftClosure, detect_shift_boundaries, shift_starts
from .timeline import DriverLog, collect_driver_logs

logger = logging.getLogger(__name__)

RouteResolver = Callable[[str, date], Optional[str]]


class RouteTable:
    """
    In-memory route resolver built from (driver_id, date, route) assignments.

    Later assignments for the same driver and day replace earlier ones.
    """

    def __init__(self, assignments: Optional[List[Mapping[str, Any]]] = None):
        self._routes: Dict[Tuple[str, date], str] = {}
        for assignment in assignments or []:
            self.add(assignment['driver_id'], assignment['date'], assignment['route'])

    def __len__(self) -> int:
        return len(self._routes)

    def add(self, driver_id: str, day: date, route: str) -> None:
        self._routes[(str(driver_id).strip(), day)] = route

    def __call__(self, driver_id: str, day: date) -> Optional[str]:
        return self._routes.get((str(driver_id).strip(), day))


@dataclass
class Shift:
    """One report row: a driver shift with its hours and compliance."""
    driver_label: str
    driver_id: str
    driver_name: str
    start: datetime
    end: datetime
    closure: ShiftClosure
    payable_minutes: int
    sleeper_minutes: int
    layover_minutes: int
    meal_compliance: MealBreakVerdict
    notes: List[str] = field(default_factory=list)
    route: Optional[str] = None

    @property
    def payable_hours(self) -> float:
        return round(self.payable_minutes / 60, 2)

    @property
    def sleeper_hours(self) -> float:
        return round(self.sleeper_minutes / 60, 2)

    @property
    def layover_hours(self) -> float:
        return round(self.layover_minutes / 60, 2)


@dataclass
class DriverTotals:
    """Per-driver totals across all of the driver's shifts."""
    driver_label: str
    driver_id: str
    driver_name: str
    shift_count: int = 0
    payable_minutes: int = 0
    sleeper_minutes: int = 0
    layover_minutes: int = 0
    discarded_rows: int = 0

    @property
    def payable_hours(self) -> float:
        return round(self.payable_minutes / 60, 2)

    @property
    def sleeper_hours(self) -> float:
        return round(self.sleeper_minutes / 60, 2)

    @property
    def layover_hours(self) -> float:
        return round(self.layover_minutes / 60, 2)


@dataclass
class ShiftReport:
    """Shift rows and driver totals for one run."""
    shifts: List[Shift]
    totals: List[DriverTotals]

    @property
    def driver_count(self) -> int:
        return len(self.totals)


class ComplianceReportService:
    """
    Builds shift and certification reports from raw driver log batches.

    Args:
        config: Thresholds (defaults to ComplianceConfig())
        is_near_home: Optional location predicate for layover classification
        route_resolver: Optional ``(driver_id, shift_start_date) -> route``
            lookup, consulted once per shift
    """

    def __init__(
        self,
        config: Optional[ComplianceConfig] = None,
        is_near_home: Optional[NearHomePredicate] = None,
        route_resolver: Optional[RouteResolver] = None
    ):
        self.config = config or ComplianceConfig()
        self.is_near_home = is_near_home
        self.route_resolver = route_resolver
        self.certification_service = CertificationGapService(self.config)

    def driver_logs(self, batches: Any) -> List[DriverLog]:
        """Collect logs for every driver, ordered by driver key."""
        return sorted(collect_driver_logs(batches), key=lambda log: log.identity.key)

    def shifts_for_driver(self, driver_log: DriverLog) -> List[Shift]:
        """Segment one driver's timeline and evaluate each shift."""
        timeline = driver_log.timeline
        identity = driver_log.identity
        shifts: List[Shift] = []
        if not timeline:
            return shifts

        for boundary in detect_shift_boundaries(timeline, self.config):
            hours = aggregate_hours(timeline, boundary, self.config, self.is_near_home)
            meal = evaluate_meal_breaks(
                timeline, boundary.start, boundary.end, hours.payable_minutes, self.config
            )
            route = None
            if self.route_resolver is not None:
                route = self.route_resolver(identity.driver_id or identity.label, boundary.start.date())

            shifts.append(Shift(
                driver_label=identity.label,
                driver_id=identity.driver_id,
                driver_name=identity.name,
                start=boundary.start,
                end=boundary.end,
                closure=boundary.closure,
                payable_minutes=hours.payable_minutes,
                sleeper_minutes=hours.sleeper_minutes,
                layover_minutes=hours.layover_minutes,
                meal_compliance=meal,
                notes=list(boundary.notes) + hours.notes,
                route=route,
            ))
        return shifts

    def shift_report(self, batches: Any) -> ShiftReport:
        """
        Build the shift report.

        Raises:
            ValidationError: If the batches are structurally invalid
        """
        all_shifts: List[Shift] = []
        totals: List[DriverTotals] = []

        for driver_log in self.driver_logs(batches):
            shifts = self.shifts_for_driver(driver_log)
            identity = driver_log.identity
            totals.append(DriverTotals(
                driver_label=identity.label,
                driver_id=identity.driver_id,
                driver_name=identity.name,
                shift_count=len(shifts),
                payable_minutes=sum(s.payable_minutes for s in shifts),
                sleeper_minutes=sum(s.sleeper_minutes for s in shifts),
                layover_minutes=sum(s.layover_minutes for s in shifts),
                discarded_rows=driver_log.discarded_rows,
            ))
            all_shifts.extend(shifts)

        violations = sum(1 for s in all_shifts if not s.meal_compliance.compliant)
        logger.info(
            f"Shift report: {len(totals)} driver(s), {len(all_shifts)} shift(s), "
            f"{violations} meal-break violation(s)"
        )
        return ShiftReport(shifts=all_shifts, totals=totals)

    def certification_report(self, batches: Any, as_of: Optional[datetime] = None) -> List[CertificationVerdict]:
        """
        Build the certification-gap report.

        Raises:
            ValidationError: If the batches are structurally invalid
        """
        verdicts: List[CertificationVerdict] = []
        for driver_log in self.driver_logs(batches):
            if not driver_log.timeline:
                continue
            starts = shift_starts(detect_shift_boundaries(driver_log.timeline, self.config))
            verdicts.extend(self.certification_service.evaluate(driver_log, starts, as_of=as_of))

        disqualified = sum(1 for v in verdicts if not v.qualified)
        logger.info(
            f"Certification report: {len(verdicts)} verdict(s), {disqualified} disqualified"
        )
        return verdicts
