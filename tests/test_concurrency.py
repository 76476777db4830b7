"""
Unit tests for AdmissionController.
"""
import asyncio

import pytest

from vaporsource.core.concurrency import AdmissionController, AdmissionError


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        AdmissionController(0)


@pytest.mark.asyncio
async def test_in_flight_never_exceeds_limit():
    controller = AdmissionController(3, name="test")
    active = 0
    peak = 0

    async def work():
        nonlocal active, peak
        async with controller.ticket():
            active += 1
            peak = max(peak, active)
            assert controller.outstanding <= 3
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            active -= 1

    await asyncio.gather(*(work() for _ in range(20)))

    assert peak == 3
    assert controller.in_use == 0
    assert controller.outstanding == 0
    assert controller.available == 3


@pytest.mark.asyncio
async def test_waiters_admitted_in_arrival_order():
    controller = AdmissionController(1)
    first = await controller.acquire()
    order = []

    async def waiter(n):
        ticket = await controller.acquire()
        order.append(n)
        controller.release(ticket)

    tasks = [asyncio.create_task(waiter(n)) for n in range(5)]
    await asyncio.sleep(0)
    assert controller.waiting == 5

    controller.release(first)
    await asyncio.gather(*tasks)

    assert order == [0, 1, 2, 3, 4]
    assert controller.in_use == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_queue():
    controller = AdmissionController(1)
    held = await controller.acquire()

    task = asyncio.create_task(controller.acquire())
    await asyncio.sleep(0)
    assert controller.waiting == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert controller.waiting == 0
    controller.release(held)
    assert controller.in_use == 0
    assert controller.outstanding == 0


@pytest.mark.asyncio
async def test_cancel_after_hand_off_returns_slot():
    controller = AdmissionController(1)
    held = await controller.acquire()

    task = asyncio.create_task(controller.acquire())
    await asyncio.sleep(0)

    controller.release(held)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert controller.in_use == 0
    assert controller.outstanding == 0


@pytest.mark.asyncio
async def test_double_release_raises():
    controller = AdmissionController(2, name="double")
    ticket = await controller.acquire()
    controller.release(ticket)

    with pytest.raises(AdmissionError):
        controller.release(ticket)
    assert controller.in_use == 0


@pytest.mark.asyncio
async def test_release_foreign_ticket_raises():
    one = AdmissionController(1, name="one")
    other = AdmissionController(1, name="other")
    ticket = await one.acquire()

    with pytest.raises(AdmissionError):
        other.release(ticket)
    one.release(ticket)


@pytest.mark.asyncio
async def test_ticket_released_when_block_raises():
    controller = AdmissionController(1)

    with pytest.raises(RuntimeError):
        async with controller.ticket():
            raise RuntimeError("boom")

    assert controller.in_use == 0
    assert controller.outstanding == 0
