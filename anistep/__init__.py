"""Anistep - Step-based canvas presentations

Turns annotated canvas shapes into a presentation that advances one step at a
time.
"""

__version__ = '0.1.0'

from . import core

__all__ = ['core']
