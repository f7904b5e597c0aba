"""Position risk simulation engine for margin lending positions"""

from .errors import InvalidPositionError, InvalidScenarioError, MarginRiskError
from .state.models import PositionSnapshot
from .stress.engine import StressTestEngine, is_in_range, simulate_batch, sweep
from .stress.models import ALL_ASSETS, ScenarioRange, ShockParameters
from .stress.simulator import classify_direction, simulate

__all__ = [
    'ALL_ASSETS',
    'InvalidPositionError',
    'InvalidScenarioError',
    'MarginRiskError',
    'PositionSnapshot',
    'ScenarioRange',
    'ShockParameters',
    'StressTestEngine',
    'classify_direction',
    'is_in_range',
    'simulate',
    'simulate_batch',
    'sweep',
]
