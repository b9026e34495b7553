import sys
from pathlib import Path

import pytest

# Make the src layout importable without an editable install
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / 'src'))

from hedge_trimmer.broker import PaperBroker
from hedge_trimmer.config import HedgeTrimmerConfig, MonitorSettings
from hedge_trimmer.hedge import Position, TradeSide

SYMBOL = "EURUSD"

# ------------------------- Helpers ------------------------- #

def make_position(position_id, side, volume, entry_price, net_profit, symbol=SYMBOL):
    return Position(
        id=position_id,
        symbol=symbol,
        side=TradeSide.from_value(side),
        volume=volume,
        entry_price=entry_price,
        net_profit=net_profit,
    )

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def paper_broker():
    return PaperBroker(prices={SYMBOL: 1.1150})


@pytest.fixture
def scenario_a_broker(paper_broker):
    """Long +50 and short -60, both 100000 units."""
    paper_broker.open_position(SYMBOL, 'long', 100000, 1.1100, net_profit=50.0, position_id=1)
    paper_broker.open_position(SYMBOL, 'short', 100000, 1.1200, net_profit=-60.0, position_id=2)
    return paper_broker


@pytest.fixture
def fast_config():
    return HedgeTrimmerConfig(
        monitor=MonitorSettings(
            symbol=SYMBOL,
            trim_fraction=0.75,
            max_retries=3,
            retry_backoff_seconds=0.01,
            log_interval_seconds=60,
        )
    )
