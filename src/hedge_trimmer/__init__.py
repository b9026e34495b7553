"""
Hedge trimmer.

Monitors a hedged pair of opposing positions on one instrument and, when the
winning side's profit covers a configured share of the losing side's loss,
closes the winners and trims the losers in priority order.
"""

__version__ = "1.0.0"
