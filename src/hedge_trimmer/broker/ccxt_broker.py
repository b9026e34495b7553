"""
CCXT broker adapter for hedge trimming.

This module provides a broker client over a ccxt.async_support exchange
running a hedge-mode derivatives account. It includes:
- Exchange initialization with API credentials
- Position snapshots for the monitored symbol
- Bid price lookup from the ticker
- Full and partial reduce-only market closes
- Mapping of ccxt errors onto the broker exception hierarchy

Retries are not performed here; the close executor owns retry policy.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import ccxt.async_support as ccxt
from ccxt.base.errors import (
    NetworkError as CCXTNetworkError,
    ExchangeError as CCXTExchangeError,
    RateLimitExceeded as CCXTRateLimitExceeded,
    AuthenticationError as CCXTAuthenticationError,
    InvalidOrder as CCXTInvalidOrder,
    ExchangeNotAvailable as CCXTExchangeNotAvailable,
    BadSymbol as CCXTBadSymbol,
)

from ..hedge.models import Position, PositionId, TradeResult, TradeSide
from .base import BrokerClient
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

logger = logging.getLogger(__name__)


@dataclass
class CcxtBrokerConfig:
    """Configuration for the CCXT broker adapter."""
    exchange_id: str = 'binanceusdm'
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    sandbox: bool = True
    timeout: int = 30000  # milliseconds
    units_per_contract: float = 1.0
    pip_size: float = 0.0001


class CcxtBroker(BrokerClient):
    """
    Broker client backed by a CCXT exchange.

    Positions are identified by the exchange position id when one is
    reported, otherwise by "<symbol>:<side>" (hedge mode holds at most one
    position per side). Volumes are contracts x units_per_contract.

    Example:
        ```python
        broker = CcxtBroker(CcxtBrokerConfig(exchange_id='binanceusdm', api_key=..., api_secret=...))
        await broker.connect()
        positions = await broker.get_positions('BTC/USDT:USDT')
        await broker.close()
        ```
    """

    def __init__(self, config: Optional[CcxtBrokerConfig] = None, exchange: Any = None):
        """
        Initialize the adapter.

        Args:
            config: Adapter configuration. Uses defaults if not provided.
            exchange: Pre-built ccxt exchange instance (skips creation in connect)
        """
        super().__init__()
        self.config = config or CcxtBrokerConfig()
        self._exchange = exchange
        self._positions: Dict[PositionId, Dict[str, Any]] = {}

    @classmethod
    def from_settings(cls, settings: Any) -> 'CcxtBroker':
        return cls(CcxtBrokerConfig(
            exchange_id=settings.exchange_id,
            api_key=settings.api_key,
            api_secret=settings.api_secret,
            sandbox=settings.sandbox,
            units_per_contract=settings.units_per_contract,
        ))

    async def connect(self) -> None:
        """
        Create the CCXT exchange instance and load markets.

        Raises:
            AuthenticationError: If API credentials are invalid.
            ExchangeNotAvailableError: If exchange is not accessible.
        """
        if self._exchange is None:
            logger.info(f"Connecting to {self.config.exchange_id} exchange...")
            exchange_class = getattr(ccxt, self.config.exchange_id)
            self._exchange = exchange_class({
                'apiKey': self.config.api_key,
                'secret': self.config.api_secret,
                'timeout': self.config.timeout,
                'enableRateLimit': True,
            })
            if self.config.sandbox:
                logger.info("Enabling sandbox/testnet mode")
                self._exchange.set_sandbox_mode(True)

        await self._call(self._exchange.load_markets)
        logger.info(f"Loaded {len(self._exchange.markets or {})} markets")

    async def close(self) -> None:
        """Close the exchange connection."""
        if self._exchange:
            await self._exchange.close()
            self._exchange = None
            logger.info("Exchange connection closed")

    def _ensure_connected(self) -> None:
        if not self._exchange:
            raise ExchangeError("Client not connected. Call connect() first.")

    async def _call(self, func: Callable[..., Awaitable[Any]], *args) -> Any:
        """Invoke an exchange method and translate ccxt errors."""
        try:
            return await func(*args)
        except CCXTRateLimitExceeded as e:
            raise RateLimitError(f"Rate limit exceeded: {e}") from e
        except CCXTExchangeNotAvailable as e:
            raise ExchangeNotAvailableError(f"Exchange not available: {e}") from e
        except CCXTNetworkError as e:
            raise NetworkError(f"Network error: {e}") from e
        except CCXTAuthenticationError as e:
            raise AuthenticationError(f"Authentication error: {e}") from e
        except CCXTBadSymbol as e:
            raise SymbolNotFoundError(f"Symbol not found: {e}") from e
        except CCXTInvalidOrder as e:
            raise InvalidOrderError(f"Invalid order: {e}") from e
        except CCXTExchangeError as e:
            raise ExchangeError(f"Exchange error: {e}") from e

    def _to_position(self, raw: Dict[str, Any], current_price: Optional[float]) -> Optional[Position]:
        contracts = float(raw.get('contracts') or 0)
        if contracts <= 0:
            return None

        side = TradeSide.from_value(raw['side'])
        symbol = raw['symbol']
        position_id = raw.get('id') or f"{symbol}:{side.value}"
        entry_price = float(raw['entryPrice'])

        pips = 0.0
        if current_price:
            direction = 1 if side is TradeSide.LONG else -1
            pips = (current_price - entry_price) / self.config.pip_size * direction

        return Position(
            id=position_id,
            symbol=symbol,
            side=side,
            volume=int(round(contracts * self.config.units_per_contract)),
            entry_price=entry_price,
            net_profit=float(raw.get('unrealizedPnl') or 0.0),
            pips=pips,
        )

    async def get_positions(self, symbol: str) -> List[Position]:
        self._ensure_connected()
        raw_positions = await self._call(self._exchange.fetch_positions, [symbol])
        current_price = None
        if raw_positions:
            current_price = await self.get_current_price(symbol)

        # Replace this symbol's snapshot so closed positions drop out
        snapshot = {}
        positions = []
        for raw in raw_positions:
            if raw.get('symbol') != symbol:
                continue
            position = self._to_position(raw, current_price)
            if position is not None:
                snapshot[position.id] = raw
                positions.append(position)

        self._positions = {
            position_id: raw
            for position_id, raw in self._positions.items()
            if raw.get('symbol') != symbol
        }
        self._positions.update(snapshot)
        return positions

    async def get_current_price(self, symbol: str) -> float:
        self._ensure_connected()
        ticker = await self._call(self._exchange.fetch_ticker, symbol)
        price = ticker.get('bid') or ticker.get('last')
        if price is None:
            raise ExchangeError(f"Ticker for {symbol} has no bid or last price")
        return float(price)

    async def close_position(
        self,
        position_id: PositionId,
        volume: Optional[int] = None
    ) -> TradeResult:
        """
        Close a position with a reduce-only market order.

        Args:
            position_id: Id from the latest get_positions() snapshot
            volume: Units to close (None closes the whole position)

        Returns:
            TradeResult built from the exchange order response
        """
        self._ensure_connected()
        raw = self._positions.get(position_id)
        if raw is None:
            raise PositionNotFoundError(
                f"Position {position_id} not in the latest snapshot",
                position_id=str(position_id)
            )

        side = TradeSide.from_value(raw['side'])
        close_side = 'sell' if side is TradeSide.LONG else 'buy'
        if volume is None:
            amount = float(raw['contracts'])
        else:
            amount = volume / self.config.units_per_contract

        params = {'reduceOnly': True, 'positionSide': side.value.upper()}

        logger.info(f"Closing {amount} of {raw['symbol']} {side.value} position {position_id}")

        order = await self._call(
            self._exchange.create_order,
            raw['symbol'],
            'market',
            close_side,
            amount,
            None,
            params
        )

        status = (order or {}).get('status')
        if status in ('rejected', 'canceled', 'expired'):
            return TradeResult(
                is_successful=False,
                error=f"Close order {order.get('id')} {status}",
                position_id=position_id,
            )

        if volume is None:
            self._positions.pop(position_id, None)

        return TradeResult(
            is_successful=True,
            position_id=position_id,
            closed_volume=volume if volume is not None else int(round(amount * self.config.units_per_contract)),
        )
