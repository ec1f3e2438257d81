"""
Qualification Module

Rule management and the rule evaluation engine.
"""

from .engine import QualificationEngine, evaluate
from .rules import RuleManager

__all__ = ["QualificationEngine", "RuleManager", "evaluate"]
