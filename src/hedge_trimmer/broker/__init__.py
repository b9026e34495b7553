"""
Broker package for the hedge trimmer.

This package provides the host broker collaborator the trim logic talks to:
- BrokerClient interface (positions, price, close, position events)
- PaperBroker in-memory simulation
- CcxtBroker adapter for live derivatives accounts
- Broker exception hierarchy
"""

from typing import Any

from .exceptions import (
    ExchangeError,
    NetworkError,
    RateLimitError,
    AuthenticationError,
    InvalidOrderError,
    ExchangeNotAvailableError,
    SymbolNotFoundError,
    PositionNotFoundError,
)

from .base import BrokerClient, POSITION_EVENTS

from .paper_broker import PaperBroker, PaperPosition


def create_broker(config: Any) -> BrokerClient:
    """
    Build the broker described by a HedgeTrimmerConfig.

    Args:
        config: HedgeTrimmerConfig instance

    Returns:
        PaperBroker or CcxtBroker
    """
    settings = config.broker
    if settings.type == 'ccxt':
        from .ccxt_broker import CcxtBroker
        return CcxtBroker.from_settings(settings)
    return PaperBroker.from_settings(settings, config.monitor.symbol)


__all__ = [
    # Exceptions
    'ExchangeError',
    'NetworkError',
    'RateLimitError',
    'AuthenticationError',
    'InvalidOrderError',
    'ExchangeNotAvailableError',
    'SymbolNotFoundError',
    'PositionNotFoundError',
    # Brokers
    'BrokerClient',
    'POSITION_EVENTS',
    'PaperBroker',
    'PaperPosition',
    'create_broker',
]
