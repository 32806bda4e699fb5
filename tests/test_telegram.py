from unittest import mock

import pytest
import requests

from poolwatch.config import TelegramConfig
from poolwatch.errors import DeliveryError, FetchError
from poolwatch.telegram import TelegramTransport, parse_update


def _resp(body, status=200):
    resp = mock.MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    return resp


@pytest.fixture
def session():
    return mock.MagicMock()


@pytest.fixture
def telegram(session):
    return TelegramTransport(TelegramConfig(bot_token="123:abc", http_timeout_seconds=4), session=session)


def test_requires_token():
    with pytest.raises(ValueError):
        TelegramTransport(TelegramConfig(bot_token=""))


def test_send_message_posts_payload(telegram, session):
    session.post.return_value = _resp({"ok": True, "result": {"message_id": 1}})
    telegram.send_message(42, "hi", reply_to_message_id=7)

    args, kwargs = session.post.call_args
    assert args[0] == "https://api.telegram.org/bot123:abc/sendMessage"
    assert kwargs["json"]["chat_id"] == 42
    assert kwargs["json"]["text"] == "hi"
    assert kwargs["json"]["reply_to_message_id"] == 7
    assert kwargs["timeout"] == 4


def test_send_message_without_reply(telegram, session):
    session.post.return_value = _resp({"ok": True, "result": {}})
    telegram.send_message(42, "hi")
    assert "reply_to_message_id" not in session.post.call_args.kwargs["json"]


def test_api_error_becomes_delivery_error(telegram, session):
    session.post.return_value = _resp(
        {"ok": False, "error_code": 403, "description": "Forbidden: bot was blocked by the user"},
        status=403,
    )
    with pytest.raises(DeliveryError) as exc:
        telegram.send_message(42, "hi")
    assert exc.value.chat_id == 42
    assert "blocked" in exc.value.reason


def test_network_error_becomes_delivery_error(telegram, session):
    session.post.side_effect = requests.exceptions.ConnectTimeout("timed out")
    with pytest.raises(DeliveryError):
        telegram.send_message(42, "hi")


def test_get_updates_parses_messages_and_offset(telegram, session):
    session.get.return_value = _resp({
        "ok": True,
        "result": [
            {
                "update_id": 10,
                "message": {
                    "message_id": 3,
                    "from": {"id": 5, "username": "miner"},
                    "chat": {"id": 5, "type": "private"},
                    "text": "/start",
                },
            },
            {"update_id": 11, "edited_message": {"message_id": 3}},
        ],
    })
    batch = telegram.get_updates(offset=10, timeout=30)

    assert batch.next_offset == 12
    assert len(batch.messages) == 1
    msg = batch.messages[0]
    assert (msg.chat_id, msg.message_id, msg.username, msg.text) == (5, 3, "miner", "/start")
    kwargs = session.get.call_args.kwargs
    assert kwargs["params"]["offset"] == 10
    assert kwargs["params"]["timeout"] == 30
    assert kwargs["timeout"] == 34


def test_get_updates_failure_is_fetch_error(telegram, session):
    session.get.side_effect = requests.exceptions.ConnectionError("down")
    with pytest.raises(FetchError):
        telegram.get_updates()


def test_get_me_rejected_token(telegram, session):
    session.get.return_value = _resp({"ok": False, "description": "Unauthorized"}, status=401)
    with pytest.raises(FetchError):
        telegram.get_me()


def test_parse_update_without_text():
    msg = parse_update({"update_id": 1, "message": {"message_id": 2, "chat": {"id": -100}, "sticker": {}}})
    assert msg.chat_id == -100
    assert msg.text == ""
    assert parse_update({"update_id": 2}) is None


def test_get_updates_skips_malformed_updates(telegram, session):
    session.get.return_value = _resp({
        "ok": True,
        "result": [
            {"message": {"message_id": 1, "chat": {"id": 5}, "text": "no update id"}},
            {"update_id": 20, "message": {"message_id": 2, "chat": {"id": "not-a-chat"}}},
            {"update_id": 21, "message": {"message_id": 3, "chat": "private"}},
            "garbage",
            {"update_id": 22, "message": {"message_id": 4, "chat": {"id": 7}, "text": "/start"}},
        ],
    })
    batch = telegram.get_updates(offset=20)

    assert batch.next_offset == 23
    assert [m.chat_id for m in batch.messages] == [7]


def test_get_updates_keeps_offset_on_empty_result(telegram, session):
    session.get.return_value = _resp({"ok": True, "result": []})
    batch = telegram.get_updates(offset=5, timeout=0)
    assert batch.next_offset == 5
    assert batch.messages == []


def test_api_fields_do_not_collide_with_request_options(telegram, session):
    session.get.return_value = _resp({"ok": True, "result": []})
    telegram.get_updates(timeout=50)

    args, kwargs = session.get.call_args
    assert args[0].endswith("/getUpdates")
    assert kwargs["params"] == {"timeout": 50, "allowed_updates": '["message"]'}
    assert kwargs["timeout"] == 54


def test_parse_update_without_update_id_is_skipped():
    assert parse_update({"message": {"message_id": 2, "chat": {"id": 1}}}) is None
