"""
Habit Analytics

Trend, correlation, heatmap and success-prediction statistics over habit
completion and health metric series.

All computations read immutable inputs and own no state, so they can run
concurrently with each other and with action processing. The long-running
correlation matrix yields to the event loop between pairs and can be
cancelled through an asyncio.Event or by cancelling its task.

Small samples are reported with low_confidence=True rather than suppressed;
pass strict=True to get InsufficientDataError instead.
"""

import asyncio
import logging
import math
from collections import Counter
from datetime import date, timedelta
from enum import Enum
from itertools import combinations
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from progression.config import MINIMUM_SAMPLE_SIZE
from progression.exceptions import AnalysisCancelledError, InsufficientDataError, ValidationError
from progression.models.analytics import (
    CorrelationResult,
    HeatmapCell,
    HeatmapResult,
    SeriesPoint,
    SuccessPrediction,
    TrendDirection,
    TrendResult,
    WeekdayRate,
)
from progression.observability import metrics
from progression.services import statistical_analysis as stats
from progression.utils.datetime_helpers import iter_days

logger = logging.getLogger(__name__)

HEATMAP_MAX_INTENSITY = 4
STREAK_SATURATION_DAYS = 30
RECENT_ACTIVITY_DECAY_DAYS = 7

# Success prediction weights
WEEKDAY_WEIGHT = 0.4
TREND_WEIGHT = 0.3
STREAK_WEIGHT = 0.2
RECENT_WEIGHT = 0.1


class Period(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def _period_start(day: date, period: Period) -> date:
    if period == Period.WEEK:
        return day - timedelta(days=day.weekday())
    if period == Period.MONTH:
        return day.replace(day=1)
    return day


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise ValidationError(
            f"Date range is reversed ({start} > {end})",
            field="date_range",
            value=(start.isoformat(), end.isoformat()),
        )


def _is_scheduled(day: date, scheduled_weekdays: Optional[Set[int]]) -> bool:
    return scheduled_weekdays is None or day.weekday() in scheduled_weekdays


# ================================================================
# Series helpers
# ================================================================

def align_series(
    x: Iterable[SeriesPoint],
    y: Iterable[SeriesPoint],
) -> Tuple[List[float], List[float]]:
    """
    Pair values of two series on the days both have a value

    If a series has several points on one day the last one wins.

    Returns:
        (x values, y values) ordered by day
    """
    x_by_day = {p.day: p.value for p in x}
    y_by_day = {p.day: p.value for p in y}
    common = sorted(set(x_by_day) & set(y_by_day))
    return [x_by_day[d] for d in common], [y_by_day[d] for d in common]


def count_by_day(days: Iterable[date]) -> Dict[date, int]:
    """Number of completions per day"""
    return dict(Counter(days))


def completion_series(
    completions: Iterable[date],
    start: date,
    end: date,
    scheduled_weekdays: Optional[Set[int]] = None,
) -> List[SeriesPoint]:
    """Daily 1/0 completion series over scheduled days, for correlation"""
    _check_range(start, end)
    done = set(completions)
    return [
        SeriesPoint(day=day, value=1.0 if day in done else 0.0)
        for day in iter_days(start, end)
        if _is_scheduled(day, scheduled_weekdays)
    ]


def group_completion_rates(
    completions: Iterable[date],
    start: date,
    end: date,
    period: Period = Period.WEEK,
    scheduled_weekdays: Optional[Set[int]] = None,
) -> List[SeriesPoint]:
    """
    Completion rate per period, for trend analysis

    Args:
        completions: Days the habit was completed (duplicates count once)
        start: First day of the range (inclusive)
        end: Last day of the range (inclusive)
        period: Grouping (weeks start on Monday)
        scheduled_weekdays: Weekdays (0=Monday) the habit is due; None = every day

    Returns:
        One point per period that contains a scheduled day, keyed by the
        period's first day, value = completed scheduled days / scheduled days
    """
    _check_range(start, end)
    done = set(completions)

    scheduled: Dict[date, int] = {}
    completed: Dict[date, int] = {}
    for day in iter_days(start, end):
        if not _is_scheduled(day, scheduled_weekdays):
            continue
        key = _period_start(day, period)
        scheduled[key] = scheduled.get(key, 0) + 1
        if day in done:
            completed[key] = completed.get(key, 0) + 1

    return [
        SeriesPoint(day=key, value=completed.get(key, 0) / count)
        for key, count in sorted(scheduled.items())
    ]


def weekday_success_rates(
    completions: Iterable[date],
    start: date,
    end: date,
    scheduled_weekdays: Optional[Set[int]] = None,
) -> List[WeekdayRate]:
    """Completion rate for each weekday (0=Monday) over the range"""
    _check_range(start, end)
    done = set(completions)
    rates = [WeekdayRate(weekday=i) for i in range(7)]

    for day in iter_days(start, end):
        if not _is_scheduled(day, scheduled_weekdays):
            continue
        rate = rates[day.weekday()]
        rate.scheduled += 1
        if day in done:
            rate.completed += 1

    for rate in rates:
        rate.rate = rate.completed / rate.scheduled if rate.scheduled else 0.0
    return rates


def streak_runs(days: Iterable[date]) -> List[int]:
    """Lengths of every run of consecutive days, in chronological order"""
    ordered = sorted(set(days))
    if not ordered:
        return []

    runs = []
    length = 1
    for previous, current in zip(ordered, ordered[1:]):
        if current - previous == timedelta(days=1):
            length += 1
        else:
            runs.append(length)
            length = 1
    runs.append(length)
    return runs


def current_run(days: Iterable[date], reference_day: date) -> int:
    """Length of the run still alive on reference_day (ending today or yesterday)"""
    done = set(days)
    cursor = reference_day if reference_day in done else reference_day - timedelta(days=1)
    length = 0
    while cursor in done:
        length += 1
        cursor -= timedelta(days=1)
    return length


def recent_activity_score(last_activity: Optional[date], reference_day: date) -> float:
    """1.0 when active on reference_day, decaying linearly to 0 after 7 days"""
    if last_activity is None:
        return 0.0
    days = max((reference_day - last_activity).days, 0)
    return max(0.0, 1.0 - days / RECENT_ACTIVITY_DECAY_DAYS)


# ================================================================
# Trend
# ================================================================

def calculate_trend(
    rates: Sequence[SeriesPoint],
    strict: bool = False,
    minimum_sample_size: int = MINIMUM_SAMPLE_SIZE,
) -> TrendResult:
    """
    Fit a linear trend to a per-period rate series

    Args:
        rates: Rates ordered by period (see group_completion_rates)
        strict: Raise InsufficientDataError below minimum_sample_size
        minimum_sample_size: Periods needed for a confident trend

    Returns:
        TrendResult with direction = sign of slope, strength = |r| of index
        vs value, prediction = next period extrapolated and clamped to [0, 1]
    """
    with metrics.analytics_duration_seconds.labels(analysis="trend").time():
        n = len(rates)
        if strict and n < minimum_sample_size:
            raise InsufficientDataError(
                f"Trend needs {minimum_sample_size} periods, got {n}",
                sample_size=n,
                minimum_sample_size=minimum_sample_size,
            )

        values = [p.value for p in rates]
        x = stats.index_series(n)
        slope, intercept = stats.linear_regression(x, values)
        r = stats.pearson_correlation(x, values)

        if slope > 0:
            direction = TrendDirection.IMPROVING
        elif slope < 0:
            direction = TrendDirection.DECLINING
        else:
            direction = TrendDirection.STABLE

        prediction = stats.clamp(intercept + slope * n, 0.0, 1.0) if n else 0.0

        return TrendResult(
            direction=direction,
            slope=slope,
            intercept=intercept,
            strength=abs(r),
            signed_strength=r,
            prediction=prediction,
            sample_size=n,
            low_confidence=n < minimum_sample_size,
        )


# ================================================================
# Correlation
# ================================================================

def correlate(
    x: Iterable[SeriesPoint],
    y: Iterable[SeriesPoint],
    strict: bool = False,
    minimum_sample_size: int = MINIMUM_SAMPLE_SIZE,
    metric_x: Optional[str] = None,
    metric_y: Optional[str] = None,
) -> CorrelationResult:
    """
    Pearson correlation of two series over their common days

    Args:
        x: First series
        y: Second series
        strict: Raise InsufficientDataError below minimum_sample_size
        minimum_sample_size: Paired samples needed for a confident result
        metric_x: Label of x for the result
        metric_y: Label of y for the result

    Returns:
        CorrelationResult; coefficient is 0 for n <= 1 or zero variance
    """
    with metrics.analytics_duration_seconds.labels(analysis="correlation").time():
        xs, ys = align_series(x, y)
        n = len(xs)
        if strict and n < minimum_sample_size:
            raise InsufficientDataError(
                f"Correlation needs {minimum_sample_size} paired samples, got {n}",
                sample_size=n,
                minimum_sample_size=minimum_sample_size,
            )

        r = stats.pearson_correlation(xs, ys)
        low_confidence = n < minimum_sample_size
        if low_confidence:
            logger.debug(f"Low-confidence correlation {metric_x} ~ {metric_y}: n={n}")

        return CorrelationResult(
            coefficient=r,
            strength=stats.correlation_strength(r),
            direction=stats.correlation_direction(r),
            confidence=stats.sample_confidence(n),
            sample_size=n,
            low_confidence=low_confidence,
            metric_x=metric_x,
            metric_y=metric_y,
        )


async def correlation_matrix(
    series: Mapping[str, Sequence[SeriesPoint]],
    cancel_event: Optional[asyncio.Event] = None,
    minimum_sample_size: int = MINIMUM_SAMPLE_SIZE,
) -> Dict[Tuple[str, str], CorrelationResult]:
    """
    Correlate every pair of named series

    Yields to the event loop after each pair so it never blocks action
    processing.

    Args:
        series: Series by name (habit id, metric type, ...)
        cancel_event: Set it to stop the computation between pairs

    Returns:
        Results keyed by (name_a, name_b) with name_a before name_b in input order

    Raises:
        AnalysisCancelledError: cancel_event was set before all pairs finished
    """
    results: Dict[Tuple[str, str], CorrelationResult] = {}
    with metrics.analytics_duration_seconds.labels(analysis="correlation_matrix").time():
        for name_a, name_b in combinations(list(series), 2):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Correlation matrix cancelled after {len(results)} pair(s)")
                raise AnalysisCancelledError(completed=len(results))

            results[(name_a, name_b)] = correlate(
                series[name_a],
                series[name_b],
                minimum_sample_size=minimum_sample_size,
                metric_x=name_a,
                metric_y=name_b,
            )
            await asyncio.sleep(0)

    return results


async def correlate_with_health_metric(
    habit_series: Sequence[SeriesPoint],
    provider,
    metric_type: str,
    start: date,
    end: date,
    strict: bool = False,
    minimum_sample_size: int = MINIMUM_SAMPLE_SIZE,
    habit_name: str = "habit",
) -> CorrelationResult:
    """
    Correlate a habit series with a health metric from a HealthDataProvider

    Only habit points within [start, end] are used.
    """
    _check_range(start, end)
    metric_series = await provider.series(metric_type, start, end)
    window = [p for p in habit_series if start <= p.day <= end]
    return correlate(
        window,
        metric_series,
        strict=strict,
        minimum_sample_size=minimum_sample_size,
        metric_x=habit_name,
        metric_y=metric_type,
    )


# ================================================================
# Heatmap
# ================================================================

def heatmap_intensity(count: float, target: float) -> int:
    """
    0 for no completions, else ceil(count / target × 4) capped at 4

    A non-positive target is treated as 1.
    """
    if count <= 0:
        return 0
    target = target if target > 0 else 1
    return min(HEATMAP_MAX_INTENSITY, math.ceil(count / target * HEATMAP_MAX_INTENSITY))


def build_heatmap(
    counts: Mapping[date, float],
    start: date,
    end: date,
    target: float = 1,
) -> HeatmapResult:
    """
    Per-day intensity grid for an inclusive date range

    Args:
        counts: Completions per day (see count_by_day); days outside the range are ignored
        start: First day
        end: Last day
        target: Completions per day that count as a full day

    Returns:
        HeatmapResult with one cell per day; missing days have intensity 0

    Raises:
        ValidationError: If end is before start
    """
    _check_range(start, end)
    with metrics.analytics_duration_seconds.labels(analysis="heatmap").time():
        cells = []
        for day in iter_days(start, end):
            count = counts.get(day, 0)
            cells.append(HeatmapCell(
                day=day,
                count=int(count),
                intensity=heatmap_intensity(count, target),
            ))

        return HeatmapResult(
            start=start,
            end=end,
            cells=cells,
            max_count=max((c.count for c in cells), default=0),
            active_days=sum(1 for c in cells if c.count > 0),
        )


# ================================================================
# Success prediction
# ================================================================

def predict_success(
    weekday_success_rate: float,
    trend_strength: float,
    current_streak: int,
    recent_activity: float,
    sample_size: int,
) -> SuccessPrediction:
    """
    Weighted success score

        0.4·weekday + 0.3·max(0, trend) + 0.2·min(1, streak/30) + 0.1·recent

    clamped to [0, 1]. trend_strength is signed: a declining trend adds nothing.
    Confidence is 1 − 1/(1 + n/20).
    """
    weekday_score = stats.clamp(weekday_success_rate, 0.0, 1.0)
    trend_score = stats.clamp(trend_strength, 0.0, 1.0)
    streak_score = min(1.0, max(current_streak, 0) / STREAK_SATURATION_DAYS)
    recent_score = stats.clamp(recent_activity, 0.0, 1.0)

    probability = (
        WEEKDAY_WEIGHT * weekday_score
        + TREND_WEIGHT * trend_score
        + STREAK_WEIGHT * streak_score
        + RECENT_WEIGHT * recent_score
    )

    return SuccessPrediction(
        probability=stats.clamp(probability, 0.0, 1.0),
        confidence=stats.sample_confidence(sample_size),
        weekday_score=weekday_score,
        trend_score=trend_score,
        streak_score=streak_score,
        recent_score=recent_score,
        sample_size=max(sample_size, 0),
    )


def predict_habit_success(
    completions: Iterable[date],
    start: date,
    end: date,
    target_day: date,
    scheduled_weekdays: Optional[Set[int]] = None,
) -> SuccessPrediction:
    """
    Predict completion on target_day from the habit's history in [start, end]

    Combines the target weekday's success rate, the weekly trend, the streak
    alive at `end` and how recently the habit was done.
    """
    with metrics.analytics_duration_seconds.labels(analysis="prediction").time():
        done = sorted(set(d for d in completions if start <= d <= end))

        weekday_rates = weekday_success_rates(done, start, end, scheduled_weekdays)
        trend = calculate_trend(group_completion_rates(done, start, end, Period.WEEK, scheduled_weekdays))
        sample_size = sum(rate.scheduled for rate in weekday_rates)

        return predict_success(
            weekday_success_rate=weekday_rates[target_day.weekday()].rate,
            trend_strength=trend.signed_strength,
            current_streak=current_run(done, end),
            recent_activity=recent_activity_score(done[-1] if done else None, end),
            sample_size=sample_size,
        )


class AnalyticsEngine:
    """
    Analytics bound to one minimum sample size.

    Args:
        minimum_sample_size: Samples needed before results stop being low-confidence
    """

    def __init__(self, minimum_sample_size: int = MINIMUM_SAMPLE_SIZE):
        self.minimum_sample_size = minimum_sample_size

    def trend(self, rates: Sequence[SeriesPoint], strict: bool = False) -> TrendResult:
        return calculate_trend(rates, strict=strict, minimum_sample_size=self.minimum_sample_size)

    def correlate(
        self,
        x: Iterable[SeriesPoint],
        y: Iterable[SeriesPoint],
        strict: bool = False,
        metric_x: Optional[str] = None,
        metric_y: Optional[str] = None,
    ) -> CorrelationResult:
        return correlate(
            x, y,
            strict=strict,
            minimum_sample_size=self.minimum_sample_size,
            metric_x=metric_x,
            metric_y=metric_y,
        )

    def heatmap(self, counts: Mapping[date, float], start: date, end: date, target: float = 1) -> HeatmapResult:
        return build_heatmap(counts, start, end, target)

    def predict(
        self,
        completions: Iterable[date],
        start: date,
        end: date,
        target_day: date,
        scheduled_weekdays: Optional[Set[int]] = None,
    ) -> SuccessPrediction:
        return predict_habit_success(completions, start, end, target_day, scheduled_weekdays)

    async def correlation_matrix(
        self,
        series: Mapping[str, Sequence[SeriesPoint]],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Dict[Tuple[str, str], CorrelationResult]:
        return await correlation_matrix(series, cancel_event, self.minimum_sample_size)

    async def correlate_with_health_metric(
        self,
        habit_series: Sequence[SeriesPoint],
        provider,
        metric_type: str,
        start: date,
        end: date,
        strict: bool = False,
    ) -> CorrelationResult:
        return await correlate_with_health_metric(
            habit_series, provider, metric_type, start, end,
            strict=strict,
            minimum_sample_size=self.minimum_sample_size,
        )
