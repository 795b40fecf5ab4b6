"""Sub-agents"""

from .base import SubAgent, SubAgentRegistry, MAX_STEPS, DONE_MARKER
from .explore import ExploreAgent
from .research import ResearchAgent
from .writer import WriterAgent

__all__ = [
    'SubAgent',
    'SubAgentRegistry',
    'MAX_STEPS',
    'DONE_MARKER',
    'ExploreAgent',
    'ResearchAgent',
    'WriterAgent',
]
