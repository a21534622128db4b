"""Unit tests for utils.telegram (requests.post patched)."""

import requests

from trailguard.utils import telegram
from trailguard.utils.telegram import TelegramNotifier, send_telegram


class FakeResponse:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


def test_unconfigured_is_noop(monkeypatch):
    def boom(*args, **kwargs):
        raise AssertionError("should not post")

    monkeypatch.setattr(telegram.requests, "post", boom)
    assert send_telegram("hi") is False
    assert TelegramNotifier().enabled is False


def test_send_success(monkeypatch):
    sent = {}

    def fake_post(url, json=None, timeout=None):
        sent.update(url=url, json=json)
        return FakeResponse(200)

    monkeypatch.setattr(telegram.requests, "post", fake_post)
    assert send_telegram("hello", "TOKEN", "42") is True
    assert sent["url"].endswith("botTOKEN/sendMessage")
    assert sent["json"] == {"chat_id": "42", "text": "hello"}


def test_send_failure_does_not_raise(monkeypatch, caplog):
    def fake_post(*args, **kwargs):
        raise requests.exceptions.ConnectionError("secret-TOKEN in url")

    monkeypatch.setattr(telegram.requests, "post", fake_post)
    assert send_telegram("hello", "TOKEN", "42") is False
    assert "TOKEN" not in caplog.text

    monkeypatch.setattr(telegram.requests, "post", lambda *a, **k: FakeResponse(400, "bad"))
    assert send_telegram("hello", "TOKEN", "42") is False
