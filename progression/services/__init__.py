"""
Analytics services

- statistical_analysis: pure statistical helpers (Pearson, regression, bucketing)
- habit_analytics: trend, correlation, heatmap and success prediction
"""

from progression.services.habit_analytics import AnalyticsEngine

__all__ = ["AnalyticsEngine"]
