import asyncio
import logging

import pytest

from hedge_trimmer.bot import CycleStatus, HedgingManagerBot
from hedge_trimmer.broker import PaperBroker
from hedge_trimmer.config import HedgeTrimmerConfig, LoggingSettings, MonitorSettings

from conftest import SYMBOL

BOT_LOGGER = 'hedge_trimmer.bot.hedging_manager'

# ------------------------- Fixtures ------------------------- #

class GatedBroker(PaperBroker):
    """Blocks get_positions until the gate is opened."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()

    async def get_positions(self, symbol):
        self.entered.set()
        await self.gate.wait()
        return await super().get_positions(symbol)


class BrokenBroker(PaperBroker):
    """Raises an unexpected error from get_positions while broken is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.broken = True

    async def get_positions(self, symbol):
        if self.broken:
            raise RuntimeError("malformed snapshot")
        return await super().get_positions(symbol)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def messages(caplog, text):
    return [r for r in caplog.records if r.name == BOT_LOGGER and r.getMessage() == text]


async def wait_until(predicate, timeout=2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout=timeout)


def seed_scenario_a(broker):
    broker.open_position(SYMBOL, 'long', 100000, 1.1100, net_profit=50.0, position_id=1)
    broker.open_position(SYMBOL, 'short', 100000, 1.1200, net_profit=-60.0, position_id=2)

# ------------------------- Cycle ------------------------- #

@pytest.mark.asyncio
async def test_cycle_trims_scenario_a(fast_config, scenario_a_broker):
    bot = HedgingManagerBot(fast_config, scenario_a_broker)

    result = await bot.run_cycle()

    assert result.status is CycleStatus.COMPLETED
    assert result.positions_count == 2
    assert result.hedged
    assert result.trimmed
    assert result.executions[0].success
    assert scenario_a_broker.get_position(1) is None
    assert scenario_a_broker.get_position(2).volume == 25000
    assert bot.get_status()['trims_executed'] == 1

    # Next cycle: nothing left to hedge
    second = await bot.run_cycle()
    assert second.status is CycleStatus.COMPLETED
    assert not second.hedged
    assert second.cycle_number == 2


@pytest.mark.asyncio
async def test_overlapping_cycle_is_skipped(fast_config):
    broker = GatedBroker(prices={SYMBOL: 1.1150})
    seed_scenario_a(broker)
    bot = HedgingManagerBot(fast_config, broker)

    first = asyncio.create_task(bot.run_cycle())
    await broker.entered.wait()
    assert bot.cycle_in_progress

    skipped = await bot.run_cycle()
    assert skipped.status is CycleStatus.SKIPPED

    broker.gate.set()
    result = await first

    assert result.status is CycleStatus.COMPLETED
    assert len(broker.close_calls) == 2
    assert not bot.cycle_in_progress
    assert bot.get_status()['cycles_skipped'] == 1


@pytest.mark.asyncio
async def test_unexpected_error_aborts_cycle_only(fast_config, caplog):
    caplog.set_level(logging.ERROR)
    broker = BrokenBroker(prices={SYMBOL: 1.1150})
    seed_scenario_a(broker)
    bot = HedgingManagerBot(fast_config, broker)

    failed = await bot.run_cycle()

    assert failed.status is CycleStatus.FAILED
    assert failed.error == "malformed snapshot"
    errors = [r for r in caplog.records if r.name == BOT_LOGGER and r.levelno == logging.ERROR]
    assert errors and errors[0].exc_info is None

    broker.broken = False
    recovered = await bot.run_cycle()

    assert recovered.status is CycleStatus.COMPLETED
    assert recovered.trimmed
    assert bot.get_status()['cycles_failed'] == 1


@pytest.mark.asyncio
async def test_detailed_logging_adds_cycle_error_traceback(caplog):
    caplog.set_level(logging.ERROR)
    config = HedgeTrimmerConfig(
        monitor=MonitorSettings(symbol=SYMBOL),
        logging=LoggingSettings(enable_detailed_logging=True),
    )
    broker = BrokenBroker(prices={SYMBOL: 1.1150})
    bot = HedgingManagerBot(config, broker)

    await bot.run_cycle()

    errors = [r for r in caplog.records if r.name == BOT_LOGGER and r.levelno == logging.ERROR]
    assert errors and errors[0].exc_info is not None
    assert errors[0].exc_info[0] is RuntimeError


@pytest.mark.asyncio
async def test_exhausted_close_does_not_fail_cycle(fast_config, scenario_a_broker):
    scenario_a_broker.fail_next_closes(2, "no liquidity", "no liquidity", "no liquidity")
    bot = HedgingManagerBot(fast_config, scenario_a_broker)

    result = await bot.run_cycle()

    assert result.status is CycleStatus.COMPLETED
    assert result.executions[0].failed_count == 1
    assert scenario_a_broker.get_position(1) is None
    assert scenario_a_broker.get_position(2).volume == 100000
    assert bot.get_status()['closes_failed'] == 1

# ------------------------- Periodic logging ------------------------- #

@pytest.mark.asyncio
async def test_status_messages_are_rate_limited(fast_config, paper_broker, caplog):
    caplog.set_level(logging.INFO)
    clock = FakeClock()
    bot = HedgingManagerBot(fast_config, paper_broker, clock=clock)
    text = "No positions found for monitored symbol"

    await bot.run_cycle()
    clock.now += 30
    await bot.run_cycle()
    assert len(messages(caplog, text)) == 1

    clock.now += 30
    await bot.run_cycle()
    assert len(messages(caplog, text)) == 2


@pytest.mark.asyncio
async def test_one_sided_positions_report_no_hedging(fast_config, paper_broker, caplog):
    caplog.set_level(logging.INFO)
    paper_broker.open_position(SYMBOL, 'long', 1000, 1.11)
    paper_broker.open_position(SYMBOL, 'long', 2000, 1.10)
    bot = HedgingManagerBot(fast_config, paper_broker, clock=FakeClock())

    result = await bot.run_cycle()

    assert not result.hedged
    assert messages(caplog, "No hedging detected - Long: 2, Short: 0")


@pytest.mark.asyncio
async def test_disabled_logging_suppresses_status_messages(paper_broker, caplog):
    caplog.set_level(logging.INFO)
    config = HedgeTrimmerConfig(
        monitor=MonitorSettings(symbol=SYMBOL),
        logging=LoggingSettings(enable_logging=False),
    )
    bot = HedgingManagerBot(config, paper_broker)

    await bot.run_cycle()

    assert not messages(caplog, "No positions found for monitored symbol")


@pytest.mark.asyncio
async def test_detailed_logging_includes_hedging_summary(scenario_a_broker, caplog):
    caplog.set_level(logging.INFO)
    config = HedgeTrimmerConfig(
        monitor=MonitorSettings(symbol=SYMBOL, retry_backoff_seconds=0.01),
        logging=LoggingSettings(enable_detailed_logging=True),
    )
    bot = HedgingManagerBot(config, scenario_a_broker)

    await bot.run_cycle()

    summaries = [r for r in caplog.records if "Is Hedged: True" in r.getMessage()]
    assert summaries
    assert summaries[0].category == 'HEDGE'
    assert summaries[0].correlation_id == 'cycle-1'

# ------------------------- Position notifications ------------------------- #

@pytest.mark.asyncio
async def test_position_events_logged_for_monitored_symbol_only(fast_config, paper_broker, caplog):
    caplog.set_level(logging.INFO)
    HedgingManagerBot(fast_config, paper_broker)

    paper_broker.open_position('GBPUSD', 'long', 1000, 1.25)
    paper_broker.open_position(SYMBOL, 'long', 1000, 1.11, net_profit=0.0, position_id='p')
    await paper_broker.close_position('p')

    position_records = [r for r in caplog.records if getattr(r, 'category', None) == 'POSITIONS']
    assert [r.getMessage() for r in position_records] == [
        "Position opened: long 1000 at 1.11",
        "Position closed: long 1000, Profit: 0.00",
    ]

# ------------------------- Lifecycle ------------------------- #

@pytest.mark.asyncio
async def test_periodic_loop_runs_and_shuts_down(fast_config, scenario_a_broker):
    bot = HedgingManagerBot(fast_config, scenario_a_broker)
    assert await bot.initialize()
    assert await bot.start()

    await wait_until(lambda: len(scenario_a_broker.close_calls) == 2)
    await asyncio.wait_for(bot.shutdown(), timeout=2.0)

    status = bot.get_status()
    assert status['running'] is False
    assert status['shutting_down'] is True
    assert (await bot.run_cycle()).status is CycleStatus.SKIPPED
    assert not await bot.start()


@pytest.mark.asyncio
async def test_shutdown_cancels_pending_retry(scenario_a_broker):
    config = HedgeTrimmerConfig(
        monitor=MonitorSettings(symbol=SYMBOL, retry_backoff_seconds=30.0, max_retries=5)
    )
    scenario_a_broker.fail_next_closes(1, "off quotes", "off quotes")
    bot = HedgingManagerBot(config, scenario_a_broker)
    await bot.start()

    await wait_until(lambda: scenario_a_broker.close_calls)
    await asyncio.sleep(0.01)
    await asyncio.wait_for(bot.shutdown(), timeout=2.0)

    # Winner never closed, loser never touched
    assert len(scenario_a_broker.close_calls) == 1
    assert scenario_a_broker.get_position(1) is not None
    assert scenario_a_broker.get_position(2).volume == 100000
    assert not bot.cycle_in_progress


@pytest.mark.asyncio
async def test_shutdown_is_idempotent(fast_config, paper_broker):
    bot = HedgingManagerBot(fast_config, paper_broker)

    await bot.shutdown()
    await bot.shutdown()

    assert bot.executor.cancelled
