from __future__ import annotations

import pytest

from duplex.core.exceptions import MalformedEventError
from duplex.services.events.retry import async_retry


class Counter:
    def __init__(self, errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


async def test_retries_transient_errors_until_success():
    fn = Counter([TimeoutError("slow"), ConnectionError("reset")])
    assert await async_retry(fn, attempts=3, base_delay=0) == "ok"
    assert fn.calls == 3


async def test_gives_up_after_last_attempt():
    fn = Counter([ConnectionError("reset")] * 5)
    with pytest.raises(ConnectionError):
        await async_retry(fn, attempts=2, base_delay=0)
    assert fn.calls == 2


@pytest.mark.parametrize("exc", [MalformedEventError("bad row"), ValueError("bad"), KeyError("user")])
async def test_payload_errors_are_not_retried(exc):
    fn = Counter([exc])
    with pytest.raises(type(exc)):
        await async_retry(fn, attempts=3, base_delay=0)
    assert fn.calls == 1


async def test_unknown_error_retried_when_message_looks_transient():
    fn = Counter([RuntimeError("temporarily unavailable")])
    assert await async_retry(fn, attempts=2, base_delay=0) == "ok"
