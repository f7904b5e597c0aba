"""Position state modules"""

from .models import PositionSnapshot
from .reconstructor import PositionLoader

__all__ = ['PositionSnapshot', 'PositionLoader']
