from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from calbot import main
from calbot.config import settings

UPDATE = {"update_id": 1}


@pytest.fixture
def client():
    # No context manager: startup would talk to Telegram
    return TestClient(main.app)


@pytest.fixture
def secret(monkeypatch):
    monkeypatch.setattr(settings, "TELEGRAM_WEBHOOK_SECRET", "s3cret")
    return "s3cret"


def _ready_app(mocker, **feed_update):
    return SimpleNamespace(
        bot=mocker.Mock(),
        dispatcher=SimpleNamespace(feed_update=mocker.AsyncMock(**feed_update)),
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_webhook_rejects_missing_secret(client, secret):
    response = client.post(settings.TELEGRAM_WEBHOOK_PATH, json=UPDATE)
    assert response.status_code == 403


def test_webhook_rejects_wrong_secret(client, secret):
    response = client.post(
        settings.TELEGRAM_WEBHOOK_PATH,
        json=UPDATE,
        headers={"X-Telegram-Bot-Api-Secret-Token": "guess"},
    )
    assert response.status_code == 403


def test_webhook_before_startup(client, secret, monkeypatch):
    monkeypatch.setattr(main, "bot_app", None)

    response = client.post(
        settings.TELEGRAM_WEBHOOK_PATH,
        json=UPDATE,
        headers={"X-Telegram-Bot-Api-Secret-Token": secret},
    )

    assert response.status_code == 503


def test_webhook_feeds_update(client, secret, monkeypatch, mocker):
    ready = _ready_app(mocker)
    monkeypatch.setattr(main, "bot_app", ready)

    response = client.post(
        settings.TELEGRAM_WEBHOOK_PATH,
        json=UPDATE,
        headers={"X-Telegram-Bot-Api-Secret-Token": secret},
    )

    assert response.json() == {"ok": True}
    ready.dispatcher.feed_update.assert_awaited_once()


def test_failed_update_is_still_acknowledged(client, secret, monkeypatch, mocker):
    monkeypatch.setattr(main, "bot_app", _ready_app(mocker, side_effect=RuntimeError("handler crashed")))

    response = client.post(
        settings.TELEGRAM_WEBHOOK_PATH,
        json=UPDATE,
        headers={"X-Telegram-Bot-Api-Secret-Token": secret},
    )

    assert response.status_code == 200
    assert response.json() == {"ok": True}
