"""
Bot package for the hedge trimmer.

This package provides the HedgingManagerBot orchestrator that runs the
periodic, single-flight monitoring cycle over a broker.
"""

from .hedging_manager import HedgingManagerBot, CycleResult, CycleStatus

__all__ = [
    'HedgingManagerBot',
    'CycleResult',
    'CycleStatus',
]
