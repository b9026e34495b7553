import asyncio
import logging

import pytest

from hedge_trimmer.broker import NetworkError
from hedge_trimmer.hedge import (
    CloseExecutor,
    CloseExecutorConfig,
    CloseRequest,
    CloseState,
    TradeResult,
)

UNIT = 0.01

# ------------------------- Fixtures ------------------------- #

class ScriptedBroker:
    """Returns scripted results for close_position, then succeeds."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def close_position(self, position_id, volume=None):
        self.calls.append((position_id, volume))
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, BaseException):
                raise result
            return result
        return TradeResult(is_successful=True, position_id=position_id, closed_volume=volume)


def failure(message="requote"):
    return TradeResult(is_successful=False, error=message)


def make_executor(broker, max_retries=3, unit=UNIT):
    return CloseExecutor(broker, CloseExecutorConfig(max_retries=max_retries, backoff_unit_seconds=unit))


@pytest.fixture
def request_partial():
    return CloseRequest(position_id=2, volume=75000, description="losing position 2")

# ------------------------- Tests ------------------------- #

@pytest.mark.asyncio
async def test_success_on_first_attempt(request_partial):
    broker = ScriptedBroker()
    outcome = await make_executor(broker).execute(request_partial)

    assert outcome.success
    assert outcome.state is CloseState.SUCCESS
    assert outcome.attempts == 1
    assert outcome.backoff_delays == []
    assert broker.calls == [(2, 75000)]


@pytest.mark.asyncio
async def test_retry_then_success_on_third_attempt(request_partial):
    broker = ScriptedBroker(failure(), failure())
    outcome = await make_executor(broker).execute(request_partial)

    assert outcome.success
    assert outcome.attempts == 3
    assert outcome.backoff_delays == pytest.approx([UNIT, 2 * UNIT])
    assert len(broker.calls) == 3


@pytest.mark.asyncio
async def test_exhausted_after_max_retries(request_partial):
    broker = ScriptedBroker(failure("a"), failure("b"), failure("c"), failure("never reached"))
    outcome = await make_executor(broker).execute(request_partial)

    assert not outcome.success
    assert outcome.is_exhausted
    assert outcome.attempts == 3
    assert outcome.error_message == "c"
    assert outcome.backoff_delays == pytest.approx([UNIT, 2 * UNIT])
    assert len(broker.calls) == 3


@pytest.mark.asyncio
async def test_terminal_outcomes_are_logged_as_order_events(request_partial, caplog):
    caplog.set_level(logging.DEBUG, logger='hedge_trimmer.hedge.close_executor')
    await make_executor(ScriptedBroker()).execute(request_partial)
    await make_executor(ScriptedBroker(failure("off quotes")), max_retries=1).execute(request_partial)

    orders = [r for r in caplog.records if getattr(r, 'category', None) == 'ORDERS']
    assert [r.levelno for r in orders] == [logging.DEBUG, logging.ERROR]
    success, exhausted = orders
    assert success.order_data['state'] == 'success'
    assert success.order_data['volume'] == 75000
    assert exhausted.getMessage() == "Failed to close losing position 2 after 1 attempts: off quotes"
    assert exhausted.order_data == {
        'position_id': 2,
        'volume': 75000,
        'state': 'exhausted',
        'attempts': 1,
        'error': 'off quotes',
    }


@pytest.mark.asyncio
async def test_exceptions_count_as_failed_attempts():
    broker = ScriptedBroker(NetworkError("timeout"), RuntimeError("boom"))
    outcome = await make_executor(broker).execute(CloseRequest(position_id=1))

    assert outcome.success
    assert outcome.attempts == 3
    assert broker.calls == [(1, None)] * 3


@pytest.mark.asyncio
async def test_single_retry_budget_makes_no_backoff():
    broker = ScriptedBroker(failure())
    outcome = await make_executor(broker, max_retries=1).execute(CloseRequest(position_id=1))

    assert outcome.is_exhausted
    assert outcome.attempts == 1
    assert outcome.backoff_delays == []


@pytest.mark.asyncio
async def test_cancel_aborts_pending_backoff(request_partial):
    broker = ScriptedBroker(failure(), failure())
    executor = make_executor(broker, unit=30.0)

    task = asyncio.create_task(executor.execute(request_partial))
    while not broker.calls:
        await asyncio.sleep(0)
    await asyncio.sleep(0.01)

    executor.cancel()
    outcome = await asyncio.wait_for(task, timeout=1.0)

    assert outcome.is_cancelled
    assert not outcome.success
    assert outcome.attempts == 1
    assert len(broker.calls) == 1


@pytest.mark.asyncio
async def test_cancelled_executor_makes_no_attempt_until_reset():
    broker = ScriptedBroker()
    executor = make_executor(broker)
    executor.cancel()

    outcome = await executor.execute(CloseRequest(position_id=1))
    assert outcome.state is CloseState.CANCELLED
    assert outcome.attempts == 0
    assert broker.calls == []

    executor.reset()
    outcome = await executor.execute(CloseRequest(position_id=1))
    assert outcome.success
