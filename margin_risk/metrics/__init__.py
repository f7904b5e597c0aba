"""Risk metrics modules"""

from .core import PositionMetrics

__all__ = ['PositionMetrics']
