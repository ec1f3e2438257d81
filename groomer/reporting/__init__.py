"""
Reporting Module

Weekly grooming efficiency and no-show analytics.
"""

from .grooming_efficiency import GroomingEfficiencyAggregator
from .no_show_analytics import NoShowAnalytics

__all__ = ["GroomingEfficiencyAggregator", "NoShowAnalytics"]
