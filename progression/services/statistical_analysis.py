"""
Statistical Analysis Utilities

Pure functions used by the habit analytics:
- Pearson correlation for continuous series
- Simple linear regression
- Strength / direction bucketing and sample-size confidence

Every function is total: degenerate input (too few points, zero variance,
NaN or infinite values) returns a neutral value instead of raising or
producing NaN.
"""

import logging
from typing import List, Sequence, Tuple
import math

from progression.models.analytics import CorrelationDirection, CorrelationStrength

logger = logging.getLogger(__name__)

# Upper bounds of |r| for each strength bucket, ascending
STRENGTH_BUCKETS = [
    (0.1, CorrelationStrength.NONE),
    (0.3, CorrelationStrength.WEAK),
    (0.5, CorrelationStrength.MODERATE),
    (0.7, CorrelationStrength.STRONG),
]

# Samples at which confidence reaches 0.5
CONFIDENCE_HALF_SAMPLE = 20

# |r| this close to 1 is reported as exactly ±1
UNIT_CORRELATION_TOLERANCE = 1e-12


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def is_constant(values: Sequence[float]) -> bool:
    """True when every value is identical (no variance)"""
    return not values or max(values) == min(values)


def all_finite(values: Sequence[float]) -> bool:
    return all(math.isfinite(v) for v in values)


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Calculate the Pearson correlation coefficient.

    Computed on mean-centred values, which is algebraically the same as
    (nΣxy − ΣxΣy) / sqrt((nΣx² − (Σx)²)(nΣy² − (Σy)²)) but does not lose
    precision on large values.

    Args:
        x: First variable values
        y: Second variable values (same length as x)

    Returns:
        r in [-1, 1]; 0.0 when n <= 1, either series is constant, or any value
        is NaN or infinite. Identical series give exactly 1.0, negated ones -1.0.

    Example:
        >>> pearson_correlation([1, 2, 3], [2, 4, 6])
        1.0

    Raises:
        ValueError: If x and y have different lengths
    """
    if len(x) != len(y):
        raise ValueError(f"x and y must have same length (x={len(x)}, y={len(y)})")

    n = len(x)
    if n <= 1:
        return 0.0

    if not (all_finite(x) and all_finite(y)):
        logger.warning(f"Non-finite value in correlation input (n={n}); reporting no correlation")
        return 0.0

    if is_constant(x) or is_constant(y):
        # No variation in one of the variables
        return 0.0

    mean_x = mean(x)
    mean_y = mean(y)

    sxy = sum((x[i] - mean_x) * (y[i] - mean_y) for i in range(n))
    sxx = sum((xi - mean_x) ** 2 for xi in x)
    syy = sum((yi - mean_y) ** 2 for yi in y)

    denominator = math.sqrt(sxx) * math.sqrt(syy)
    if denominator == 0 or not math.isfinite(denominator):
        logger.warning(f"Correlation denominator out of range ({denominator}); reporting no correlation")
        return 0.0

    r = sxy / denominator

    # Rounding leaves perfect correlations a few ulps short of ±1
    if abs(r) >= 1.0 - UNIT_CORRELATION_TOLERANCE:
        return math.copysign(1.0, r)
    return r


def linear_regression(x: Sequence[float], y: Sequence[float]) -> Tuple[float, float]:
    """
    Least-squares fit of y = slope · x + intercept

    Returns:
        (slope, intercept); slope is 0 and intercept the mean of y when x has
        no variance or fewer than two points are given

    Raises:
        ValueError: If x and y have different lengths
    """
    if len(x) != len(y):
        raise ValueError(f"x and y must have same length (x={len(x)}, y={len(y)})")

    n = len(x)
    if n == 0:
        return 0.0, 0.0

    mean_x = mean(x)
    mean_y = mean(y)
    sxx = sum((xi - mean_x) ** 2 for xi in x)
    if n < 2 or is_constant(x) or sxx == 0:
        return 0.0, mean_y

    sxy = sum((x[i] - mean_x) * (y[i] - mean_y) for i in range(n))
    slope = sxy / sxx
    return slope, mean_y - slope * mean_x


def correlation_strength(r: float) -> CorrelationStrength:
    """
    Bucket |r| into a strength label

    - < 0.1 none, < 0.3 weak, < 0.5 moderate, < 0.7 strong, else very strong
    """
    magnitude = abs(r)
    for upper, strength in STRENGTH_BUCKETS:
        if magnitude < upper:
            return strength
    return CorrelationStrength.VERY_STRONG


def correlation_direction(r: float) -> CorrelationDirection:
    if correlation_strength(r) == CorrelationStrength.NONE:
        return CorrelationDirection.NONE
    return CorrelationDirection.POSITIVE if r > 0 else CorrelationDirection.NEGATIVE


def sample_confidence(sample_size: int) -> float:
    """
    Confidence from sample size: 1 − 1/(1 + n/20)

    Monotonically increasing and saturating toward 1; 0 for no samples.
    """
    n = max(sample_size, 0)
    return 1.0 - 1.0 / (1.0 + n / CONFIDENCE_HALF_SAMPLE)


def index_series(length: int) -> List[float]:
    """Time index 0..length-1 used as the x axis of a trend"""
    return [float(i) for i in range(length)]
