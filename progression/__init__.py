"""
Habit progression engine

Turns user actions into points, streaks, levels and achievements, and
computes trend, correlation, heatmap and success-prediction statistics
over habit and health series.
"""

__version__ = "0.1.0"
