import asyncio
import logging

import pytest

from core.debounce import Debouncer


class _Counter:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1


@pytest.mark.asyncio
async def test_rapid_triggers_fire_once():
    callback = _Counter()
    debouncer = Debouncer(0.02, callback)

    for _ in range(5):
        debouncer.trigger()
    assert debouncer.pending
    await asyncio.sleep(0.1)

    assert callback.calls == 1
    assert not debouncer.pending


@pytest.mark.asyncio
async def test_flush_fires_immediately():
    callback = _Counter()
    debouncer = Debouncer(10, callback)

    debouncer.trigger()
    await debouncer.flush()

    assert callback.calls == 1
    assert not debouncer.pending


@pytest.mark.asyncio
async def test_flush_without_pending_timer_is_a_no_op():
    callback = _Counter()
    await Debouncer(0.01, callback).flush()
    assert callback.calls == 0


@pytest.mark.asyncio
async def test_aclose_drops_pending_timer_and_ignores_new_triggers():
    callback = _Counter()
    debouncer = Debouncer(0.02, callback)

    debouncer.trigger()
    await debouncer.aclose()
    debouncer.trigger()
    await asyncio.sleep(0.06)

    assert callback.calls == 0
    assert not debouncer.pending


@pytest.mark.asyncio
async def test_callback_errors_are_logged(caplog):
    async def _boom() -> None:
        raise RuntimeError("store offline")

    debouncer = Debouncer(10, _boom, name="autosave")
    debouncer.trigger()
    with caplog.at_level(logging.ERROR, logger="core.debounce"):
        await debouncer.flush()

    assert "Debounced callback autosave failed" in caplog.text


def test_negative_delay_is_clamped():
    assert Debouncer(-1, _Counter()).delay == 0.0
