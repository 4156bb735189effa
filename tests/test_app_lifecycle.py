"""
tests/test_app_lifecycle.py -- Background sweep loop and the catch-all error handler.

Covers:
  - a sweep that raises is logged and the loop keeps running
  - unexpected exceptions become a 500 internal_error envelope with no exception text
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from unittest.mock import MagicMock

from api.main import _sweep_loop, generic_exception_handler


def test_sweep_loop_survives_a_failing_sweep() -> None:
    calls: list[int] = []

    def sweep() -> dict:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return {"revoked_tokens": 0}

    app = MagicMock()
    app.state.container.sweep.side_effect = sweep

    async def run() -> None:
        task = asyncio.create_task(_sweep_loop(app, 0))
        while len(calls) < 2:
            await asyncio.sleep(0.01)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    asyncio.run(asyncio.wait_for(run(), timeout=5))
    assert len(calls) >= 2


def test_unhandled_exception_is_a_generic_500() -> None:
    request = MagicMock()
    request.method = "GET"
    request.url.path = "/api/v1/users"

    response = asyncio.run(generic_exception_handler(request, KeyError("secret-column")))
    assert response.status_code == 500
    body = json.loads(response.body)
    assert body["error"]["code"] == "internal_error"
    assert body["error"]["message"] == "An unexpected error occurred."
    assert "secret-column" not in response.body.decode()
