"""
Comparative Market Analysis reports.

Wraps a valuation run in a report that can be re-run as the user edits
subject overrides or toggles comparables. Every estimate the report has
produced is kept in an append-only value history.
"""

import logging
import statistics
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .comp_engine import (
    CompValuationEngine,
    ScoredComparable,
    SelectionFilters,
    ValuationEstimate,
    ValuationRun,
)
from .errors import ValidationError
from .models import ComparableCandidate, SubjectProperty, record_to_dict
from .money import to_money
from .policy import EnginePolicy


logger = logging.getLogger(__name__)


# =============================================================================
# Value History
# =============================================================================

@dataclass(frozen=True)
class ValueHistoryEntry:
    """Snapshot of an estimate at a point in time."""
    recorded_at: datetime
    low: Optional[Decimal]
    mid: Optional[Decimal]
    high: Optional[Decimal]
    confidence_score: float
    confidence_level: str
    comparables_count: int
    note: str = ""

    @classmethod
    def from_estimate(
        cls, estimate: ValuationEstimate, recorded_at: datetime, note: str = ""
    ) -> "ValueHistoryEntry":
        return cls(
            recorded_at=recorded_at,
            low=estimate.low,
            mid=estimate.mid,
            high=estimate.high,
            confidence_score=estimate.confidence_score,
            confidence_level=estimate.confidence_level.value,
            comparables_count=estimate.comparables_count,
            note=note,
        )

    def to_dict(self) -> dict:
        return {
            "recorded_at": self.recorded_at.isoformat(),
            "low": str(self.low) if self.low is not None else None,
            "mid": str(self.mid) if self.mid is not None else None,
            "high": str(self.high) if self.high is not None else None,
            "confidence_score": self.confidence_score,
            "confidence_level": self.confidence_level,
            "comparables_count": self.comparables_count,
            "note": self.note,
        }


class ValueHistory:
    """
    Append-only list of estimate snapshots.

    Entries can be added but never modified or removed.
    """

    def __init__(self):
        self._entries: List[ValueHistoryEntry] = []

    def record(
        self, estimate: ValuationEstimate, recorded_at: datetime, note: str = ""
    ) -> ValueHistoryEntry:
        entry = ValueHistoryEntry.from_estimate(estimate, recorded_at, note)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> Tuple[ValueHistoryEntry, ...]:
        return tuple(self._entries)

    @property
    def latest(self) -> Optional[ValueHistoryEntry]:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ValueHistoryEntry]:
        return iter(tuple(self._entries))

    def to_list(self) -> List[dict]:
        return [e.to_dict() for e in self._entries]


# =============================================================================
# Summary Statistics
# =============================================================================

@dataclass(frozen=True)
class CmaSummary:
    """Descriptive statistics over a report's comparables."""
    total_comparables: int = 0
    selected_comparables: int = 0
    avg_sale_price: Optional[Decimal] = None
    avg_adjusted_price: Optional[Decimal] = None
    median_adjusted_price: Optional[Decimal] = None
    min_adjusted_price: Optional[Decimal] = None
    max_adjusted_price: Optional[Decimal] = None
    avg_distance_miles: Optional[float] = None
    avg_days_on_market: Optional[int] = None
    grade_distribution: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        def money(value):
            return str(value) if value is not None else None

        return {
            "total_comparables": self.total_comparables,
            "selected_comparables": self.selected_comparables,
            "avg_sale_price": money(self.avg_sale_price),
            "avg_adjusted_price": money(self.avg_adjusted_price),
            "median_adjusted_price": money(self.median_adjusted_price),
            "min_adjusted_price": money(self.min_adjusted_price),
            "max_adjusted_price": money(self.max_adjusted_price),
            "avg_distance_miles": self.avg_distance_miles,
            "avg_days_on_market": self.avg_days_on_market,
            "grade_distribution": dict(self.grade_distribution),
        }


def build_summary(comparables: Sequence[ScoredComparable]) -> CmaSummary:
    """
    Summarise the selected comparables.

    Zero days on market and unknown distances are excluded from their
    averages.
    """
    selected = [c for c in comparables if c.is_selected]
    if not selected:
        return CmaSummary(total_comparables=len(comparables))

    sale_prices = [c.sale_price for c in selected]
    adjusted = [c.adjusted_price for c in selected]
    distances = [c.distance_miles for c in selected if c.distance_miles is not None]
    doms = [
        c.candidate.days_on_market for c in selected
        if c.candidate.days_on_market and c.candidate.days_on_market > 0
    ]
    grades = Counter(c.comparability_grade for c in selected)

    return CmaSummary(
        total_comparables=len(comparables),
        selected_comparables=len(selected),
        avg_sale_price=to_money(sum(sale_prices) / len(sale_prices)),
        avg_adjusted_price=to_money(sum(adjusted) / len(adjusted)),
        median_adjusted_price=to_money(statistics.median(adjusted)),
        min_adjusted_price=min(adjusted),
        max_adjusted_price=max(adjusted),
        avg_distance_miles=round(sum(distances) / len(distances), 2) if distances else None,
        avg_days_on_market=round(sum(doms) / len(doms)) if doms else None,
        grade_distribution=dict(sorted(grades.items())),
    )


# =============================================================================
# Report
# =============================================================================

@dataclass
class CmaReport:
    """
    A comparative market analysis for one subject.

    comparables and estimate are replaced on every re-run; history only
    grows.
    """
    report_id: str
    subject: SubjectProperty
    filters: SelectionFilters
    run: ValuationRun
    summary: CmaSummary
    created_at: datetime
    updated_at: datetime
    history: ValueHistory = field(default_factory=ValueHistory)

    @property
    def comparables(self) -> List[ScoredComparable]:
        return self.run.comparables

    @property
    def estimate(self) -> ValuationEstimate:
        return self.run.estimate

    @property
    def is_arv_mode(self) -> bool:
        return self.run.arv_mode

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "report_id": self.report_id,
            "subject": record_to_dict(self.subject),
            "filters": self.filters.to_dict(),
            "selection": self.run.selection.to_dict(),
            "comparables": [c.to_dict() for c in self.comparables],
            "estimate": self.estimate.to_dict(),
            "summary": self.summary.to_dict(),
            "is_arv_mode": self.is_arv_mode,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "history": self.history.to_list(),
        }


class CmaReportService:
    """
    Generates and re-runs CMA reports.

    Holds only the immutable policy, the reference date and a clock.
    """

    def __init__(
        self,
        policy: EnginePolicy = None,
        reference_date: date = None,
        clock: Callable[[], datetime] = None,
    ):
        """
        Initialize report service.

        Args:
            policy: Engine policy (default: EnginePolicy())
            reference_date: Reference date for recency and windows
            clock: Returns the current time for timestamps (default: datetime.now)
        """
        self._engine = CompValuationEngine(policy=policy, reference_date=reference_date)
        self._clock = clock or datetime.now

    def generate_report(
        self,
        subject: SubjectProperty,
        pool: Sequence[ComparableCandidate],
        filters: SelectionFilters = None,
        arv_mode: bool = False,
        report_id: str = None,
    ) -> CmaReport:
        """
        Run a valuation and wrap it in a new report.

        Args:
            subject: Subject property (may carry overrides)
            pool: Candidate listings for the subject's market area
            filters: Optional selection narrowing
            arv_mode: Value as after-repair
            report_id: Identifier (default: CMA-<listing_id>-<timestamp>)

        Returns:
            CmaReport with one history entry
        """
        filters = filters or SelectionFilters()
        run = self._engine.valuate(subject, pool, filters, arv_mode=arv_mode)
        now = self._clock()

        report = CmaReport(
            report_id=report_id or f"CMA-{subject.listing_id}-{now:%Y%m%d%H%M%S}",
            subject=subject,
            filters=filters,
            run=run,
            summary=build_summary(run.comparables),
            created_at=now,
            updated_at=now,
        )
        report.history.record(run.estimate, now, note="generated")
        return report

    def set_selection(
        self,
        report: CmaReport,
        selection: Mapping[str, bool] = None,
        renovated: Mapping[str, bool] = None,
        distressed: Mapping[str, bool] = None,
    ) -> CmaReport:
        """
        Toggle comparable flags and re-aggregate.

        Args:
            report: Report to update in place
            selection: listing_id -> is_selected
            renovated: listing_id -> is_renovated
            distressed: listing_id -> is_distressed

        Returns:
            The same report with a new estimate and history entry

        Raises:
            ValidationError: If a listing id is not one of the report's comparables
        """
        previous = self._flagged(report, selection, renovated, distressed)
        return self._rescore(report, report.subject, previous, note="selection changed")

    def rerun(
        self,
        report: CmaReport,
        overrides: Mapping[str, object] = None,
        selection: Mapping[str, bool] = None,
    ) -> CmaReport:
        """
        Re-run adjustments after the user edits subject overrides.

        The comparable set and user flags are kept; adjustments, scores
        and the estimate are recomputed.

        Args:
            report: Report to update in place
            overrides: Attribute overrides merged into the subject's
            selection: Optional listing_id -> is_selected changes

        Returns:
            The same report with a new estimate and history entry

        Raises:
            ValidationError: On unknown override keys or listing ids
        """
        subject = report.subject.with_overrides(overrides) if overrides else report.subject
        previous = self._flagged(report, selection)
        return self._rescore(report, subject, previous, note="overrides applied")

    @staticmethod
    def _flagged(
        report: CmaReport,
        selection: Mapping[str, bool] = None,
        renovated: Mapping[str, bool] = None,
        distressed: Mapping[str, bool] = None,
    ) -> Dict[str, ScoredComparable]:
        """Current comparables keyed by id with flag changes applied."""
        selection = selection or {}
        renovated = renovated or {}
        distressed = distressed or {}

        known = {c.listing_id for c in report.comparables}
        unknown = (set(selection) | set(renovated) | set(distressed)) - known
        if unknown:
            raise ValidationError(
                f"Unknown comparables: {', '.join(sorted(unknown))}", field="listing_id"
            )

        return {
            c.listing_id: c.with_flags(
                is_selected=selection.get(c.listing_id),
                is_renovated=renovated.get(c.listing_id),
                is_distressed=distressed.get(c.listing_id),
            )
            for c in report.comparables
        }

    def _rescore(
        self,
        report: CmaReport,
        subject: SubjectProperty,
        previous: Mapping[str, ScoredComparable],
        note: str,
    ) -> CmaReport:
        scored = self._engine.score_comparables(
            subject.effective(), report.run.selection,
            arv_mode=report.is_arv_mode, previous=previous,
        )
        estimate = self._engine.aggregator.aggregate(scored)
        now = self._clock()

        report.subject = subject
        report.run = ValuationRun(
            subject=subject,
            selection=report.run.selection,
            comparables=scored,
            estimate=estimate,
            arv_mode=report.is_arv_mode,
        )
        report.summary = build_summary(scored)
        report.updated_at = now
        report.history.record(estimate, now, note=note)

        logger.debug("Re-ran %s (%s): mid=%s", report.report_id, note, estimate.mid)
        return report
