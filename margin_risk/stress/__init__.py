"""Stress testing modules"""

from .engine import StressTestEngine
from .models import ScenarioSummary, SimulatedPosition, StressCurve
from .scenario import ScenarioSession, ScenarioState

__all__ = [
    'StressTestEngine',
    'ScenarioSummary',
    'SimulatedPosition',
    'StressCurve',
    'ScenarioSession',
    'ScenarioState',
]
