from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from common.push import EXPO_PUSH_URL, ExpoPushClient, PushError, dispatch
from state.models import NotificationMessage


def _msg(token: str = "ExponentPushToken[abc]", **kw) -> NotificationMessage:
    return NotificationMessage(push_token=token, title=kw.pop("title", "⚡ Energy Full"), body=kw.pop("body", "b"), **kw)


def test_send_posts_one_json_array():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": [{"status": "ok", "id": "1"}, {"status": "ok", "id": "2"}]})

    client = httpx.Client(transport=httpx.MockTransport(handler), timeout=10.0)
    with ExpoPushClient(client=client) as push:
        tickets = push.send([_msg("t1", channel_id="torn-sentinel-alerts"), _msg("t2")])

    assert len(seen) == 1
    req = seen[0]
    assert str(req.url) == EXPO_PUSH_URL
    body = json.loads(req.content)
    assert [m["to"] for m in body] == ["t1", "t2"]
    assert body[0]["channelId"] == "torn-sentinel-alerts"
    assert "channelId" not in body[1]
    assert body[0]["sound"] == "default"
    assert body[0]["priority"] == "high"
    assert len(tickets) == 2


def test_send_non_2xx_raises():
    client = httpx.Client(transport=httpx.MockTransport(lambda _r: httpx.Response(503, text="down")))
    with ExpoPushClient(client=client) as push:
        with pytest.raises(PushError):
            push.send([_msg()])


def test_send_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with ExpoPushClient(client=client) as push:
        with pytest.raises(PushError):
            push.send([_msg()])


class _Recorder:
    def __init__(self, *, tickets=None, error=None) -> None:
        self.calls = 0
        self._tickets = tickets or []
        self._error = error

    def send(self, messages):
        self.calls += 1
        if self._error:
            raise self._error
        return self._tickets


def test_dispatch_empty_makes_no_call():
    rec = _Recorder()
    assert dispatch(rec, []) == 0  # type: ignore[arg-type]
    assert rec.calls == 0


def test_dispatch_counts_ticket_errors():
    rec = _Recorder(tickets=[{"status": "ok"}, {"status": "error", "message": "DeviceNotRegistered"}, {"status": "ok"}])
    assert dispatch(rec, [_msg(), _msg(), _msg()]) == 2  # type: ignore[arg-type]
    assert rec.calls == 1


def test_dispatch_swallows_gateway_failure():
    rec = _Recorder(error=PushError("HTTP 500"))
    assert dispatch(rec, [_msg()]) == 0  # type: ignore[arg-type]
