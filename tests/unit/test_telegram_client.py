"""Unit tests for the outbound Telegram client."""

import json

import httpx
import pytest

from src.telegram_client import TelegramAPIError, TelegramClient

TOKEN = "123456789:" + "A" * 35


def _client_with(handler, sleeps=None):
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    sleep = sleeps.append if sleeps is not None else (lambda _: None)
    return TelegramClient(TOKEN, http_client=http_client, sleep=sleep)


def test_send_message_payload():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 7}})

    body = _client_with(handler).send_message("42", "<b>hi</b>")

    assert body["result"]["message_id"] == 7
    assert len(requests) == 1
    assert requests[0].url.path == f"/bot{TOKEN}/sendMessage"
    payload = json.loads(requests[0].content)
    assert payload["chat_id"] == "42"
    assert payload["text"] == "<b>hi</b>"
    assert payload["parse_mode"] == "HTML"


def test_plain_text_has_no_parse_mode():
    payloads = []

    def handler(request):
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    _client_with(handler).send_message("42", "a < b", html=False)
    assert "parse_mode" not in payloads[0]


def test_retries_then_succeeds():
    attempts = []
    sleeps = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(500, json={"ok": False, "description": "Internal error"})
        return httpx.Response(200, json={"ok": True})

    _client_with(handler, sleeps).send_message("42", "hi")
    assert len(attempts) == 3
    assert sleeps == [0.0, 0.5]


def test_gives_up_after_two_retries():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})

    with pytest.raises(TelegramAPIError, match="chat not found"):
        _client_with(handler).send_message("42", "hi")
    assert len(attempts) == 3


def test_transport_error_is_wrapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TelegramAPIError, match="connection refused"):
        _client_with(handler).send_message("42", "hi")


def test_non_json_response():
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    with pytest.raises(TelegramAPIError, match="Invalid JSON"):
        _client_with(handler).send_message("42", "hi")
