"""Memory module"""

from .manager import MemoryManager
from .routines import RoutineManager

__all__ = ['MemoryManager', 'RoutineManager']
