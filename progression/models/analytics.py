"""Analytics result models"""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SeriesPoint(BaseModel):
    """One (day, value) observation of a series"""
    model_config = ConfigDict(frozen=True)

    day: date
    value: float


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class TrendResult(BaseModel):
    """Linear trend of a rate series"""
    direction: TrendDirection
    slope: float
    intercept: float
    strength: float = Field(ge=0.0, le=1.0)
    signed_strength: float = Field(ge=-1.0, le=1.0)
    prediction: float = Field(ge=0.0, le=1.0)
    sample_size: int
    low_confidence: bool = False


class CorrelationStrength(str, Enum):
    NONE = "none"
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    VERY_STRONG = "very_strong"


class CorrelationDirection(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NONE = "none"


class CorrelationResult(BaseModel):
    """Pearson correlation between two aligned series"""
    coefficient: float = Field(ge=-1.0, le=1.0)
    strength: CorrelationStrength
    direction: CorrelationDirection
    confidence: float = Field(ge=0.0, le=1.0)
    sample_size: int
    low_confidence: bool = False
    metric_x: Optional[str] = None
    metric_y: Optional[str] = None


class HeatmapCell(BaseModel):
    day: date
    count: int = 0
    intensity: int = Field(default=0, ge=0, le=4)


class HeatmapResult(BaseModel):
    """Per-day completion intensity over an inclusive date range"""
    start: date
    end: date
    cells: list[HeatmapCell]
    max_count: int = 0
    active_days: int = 0


class WeekdayRate(BaseModel):
    weekday: int = Field(ge=0, le=6)
    scheduled: int = 0
    completed: int = 0
    rate: float = 0.0


class SuccessPrediction(BaseModel):
    """Estimated probability of completing a habit on a target day"""
    probability: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    weekday_score: float
    trend_score: float
    streak_score: float
    recent_score: float
    sample_size: int
