"""Result caching"""

from .cache import ScenarioCache

__all__ = ['ScenarioCache']
