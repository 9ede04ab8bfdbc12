"""Tests for platform adapters: webhook parsing and outbound sends."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from socialhub.adapters.facebook import FacebookAdapter
from socialhub.adapters.instagram import InstagramAdapter
from socialhub.adapters.slack import SlackAdapter
from socialhub.adapters.telegram import TelegramAdapter
from socialhub.adapters.twitter import TwitterAdapter
from socialhub.adapters.whatsapp import WhatsAppAdapter
from socialhub.core.config import (
    FacebookConfig,
    InstagramConfig,
    SlackConfig,
    TelegramConfig,
    TwitterConfig,
    WhatsAppConfig,
)


def json_response(status_code: int, body, method: str = "POST", url: str = "https://example.test"):
    return httpx.Response(status_code, json=body, request=httpx.Request(method, url))


@pytest.fixture
def received():
    return []


@pytest.fixture
def mock_http():
    """Patch httpx.AsyncClient and yield (client_class, client)."""
    mock_client = AsyncMock()
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value.__aenter__.return_value = mock_client
        yield mock_client_class, mock_client


# ===========================================================================
# Telegram
# ===========================================================================


class TestTelegramWebhook:
    @pytest.fixture
    def adapter(self, received):
        return TelegramAdapter(TelegramConfig(enabled=True, bot_token="123:abc"), received.append)

    def test_text_message(self, adapter, received):
        adapter.handle_webhook({
            "update_id": 1,
            "message": {
                "message_id": 7,
                "from": {"id": 42, "username": "alice"},
                "chat": {"id": 42},
                "date": 1700000000,
                "text": "hi",
            },
        })

        assert len(received) == 1
        message = received[0]
        assert message.platform == "telegram"
        assert message.sender_id == "42"
        assert message.chat_id == "42"
        assert message.text == "hi"
        assert message.timestamp_millis == 1700000000000
        assert message.message_id == "7"
        assert message.username == "alice"
        assert message.is_forwarded is False

    def test_edited_message(self, adapter, received):
        adapter.handle_webhook({
            "edited_message": {
                "message_id": 8,
                "from": {"id": 1},
                "chat": {"id": -100},
                "date": 1700000001,
                "text": "fixed typo",
            },
        })
        assert received[0].chat_id == "-100"
        assert received[0].text == "fixed typo"

    def test_forward_origin(self, adapter, received):
        adapter.handle_webhook({
            "message": {
                "message_id": 9,
                "from": {"id": 1},
                "chat": {"id": 1},
                "date": 1700000000,
                "text": "look at this",
                "forward_origin": {
                    "type": "user",
                    "sender_user": {"id": 555, "username": "bob"},
                },
            },
        })
        message = received[0]
        assert message.is_forwarded is True
        assert message.forwarded_from.user_id == "555"
        assert message.forwarded_from.username == "bob"

    def test_legacy_forward_fields(self, adapter, received):
        adapter.handle_webhook({
            "message": {
                "message_id": 10,
                "from": {"id": 1},
                "chat": {"id": 1},
                "date": 1700000000,
                "text": "old style",
                "forward_sender_name": "Hidden User",
            },
        })
        assert received[0].is_forwarded is True
        assert received[0].forwarded_from.sender_name == "Hidden User"

    def test_captioned_photo_and_reply(self, adapter, received):
        adapter.handle_webhook({
            "message": {
                "message_id": 11,
                "from": {"id": 1},
                "chat": {"id": 1},
                "date": 1700000000,
                "caption": "sunset",
                "photo": [{"file_id": "abc"}],
                "reply_to_message": {"message_id": 3},
            },
        })
        assert received[0].text == "sunset"
        assert received[0].media_type == "photo"
        assert received[0].reply_to_message_id == "3"

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {},
        {"message": "not an object"},
        {"message": {"message_id": 1, "from": {"id": 1}, "chat": {"id": 1}, "date": 1}},
        {"message": {"text": "no ids"}},
        {"message": {"message_id": 1, "from": {"id": 1}, "chat": {"id": 1}, "date": 1, "text": 5}},
        {"message": {"message_id": 1, "from": {"id": 1}, "chat": {"id": 1}, "date": "x", "text": "hi"}},
        {"message": {"message_id": 1, "from": "junk", "chat": {"id": 1}, "date": 1, "text": "hi"}},
    ])
    def test_malformed_updates_are_ignored(self, adapter, received, payload):
        adapter.handle_webhook(payload)
        assert received == []


class TestTelegramSend:
    @pytest.mark.asyncio
    async def test_send_message(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.return_value = json_response(200, {"ok": True, "result": {"message_id": 12}})
        adapter = TelegramAdapter(TelegramConfig(bot_token="123:abc"))

        result = await adapter.send_message("42", "hello")

        assert result.success is True
        assert result.data["result"]["message_id"] == 12
        mock_client.post.assert_awaited_once_with(
            "https://api.telegram.org/bot123:abc/sendMessage",
            json={"chat_id": "42", "text": "hello"},
        )

    @pytest.mark.asyncio
    async def test_reply_sets_reply_to_message_id(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.return_value = json_response(200, {"ok": True})
        adapter = TelegramAdapter(TelegramConfig(bot_token="123:abc"))

        await adapter.send_message("42", "answer", reply_to_message_id="7")

        _, kwargs = mock_client.post.call_args
        assert kwargs["json"]["reply_to_message_id"] == "7"

    @pytest.mark.asyncio
    async def test_error_uses_platform_description(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.return_value = json_response(
            400, {"ok": False, "error_code": 400, "description": "Bad Request: chat not found"}
        )
        adapter = TelegramAdapter(TelegramConfig(bot_token="123:abc"))

        result = await adapter.send_message("0", "hello")

        assert result.success is False
        assert result.error == "Bad Request: chat not found"

    @pytest.mark.asyncio
    async def test_transport_error(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.side_effect = httpx.ConnectError("connection refused")
        adapter = TelegramAdapter(TelegramConfig(bot_token="123:abc"))

        result = await adapter.send_message("42", "hello")

        assert result.success is False
        assert result.error == "connection refused"

    @pytest.mark.asyncio
    async def test_set_webhook(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.return_value = json_response(200, {"ok": True, "result": True})
        adapter = TelegramAdapter(TelegramConfig(bot_token="123:abc"))

        result = await adapter.set_webhook("https://hub.example.com/")

        assert result.success is True
        mock_client.post.assert_awaited_once_with(
            "https://api.telegram.org/bot123:abc/setWebhook",
            json={"url": "https://hub.example.com/webhook/telegram"},
        )


# ===========================================================================
# Meta: Facebook, Instagram, WhatsApp
# ===========================================================================


def messenger_payload(obj: str) -> dict:
    return {
        "object": obj,
        "entry": [{
            "id": "PAGE",
            "messaging": [{
                "sender": {"id": "111"},
                "recipient": {"id": "PAGE"},
                "timestamp": 1700000000123,
                "message": {"mid": "m_1", "text": "hello page"},
            }],
        }],
    }


class TestMessengerAdapters:
    def test_facebook_webhook(self, received):
        adapter = FacebookAdapter(FacebookConfig(), received.append)
        adapter.handle_webhook(messenger_payload("page"))

        assert len(received) == 1
        assert received[0].platform == "facebook"
        assert received[0].sender_id == "111"
        assert received[0].timestamp_millis == 1700000000123
        assert received[0].message_id == "m_1"

    def test_instagram_webhook(self, received):
        adapter = InstagramAdapter(InstagramConfig(), received.append)
        adapter.handle_webhook(messenger_payload("instagram"))
        assert received[0].platform == "instagram"

    def test_wrong_object_is_ignored(self, received):
        FacebookAdapter(FacebookConfig(), received.append).handle_webhook(messenger_payload("instagram"))
        InstagramAdapter(InstagramConfig(), received.append).handle_webhook(messenger_payload("page"))
        assert received == []

    def test_non_text_events_are_skipped(self, received):
        payload = messenger_payload("page")
        payload["entry"][0]["messaging"].append({
            "sender": {"id": "111"},
            "timestamp": 1,
            "message": {"mid": "m_2", "attachments": [{"type": "image"}]},
        })
        payload["entry"].append("garbage")

        FacebookAdapter(FacebookConfig(), received.append).handle_webhook(payload)
        assert [m.message_id for m in received] == ["m_1"]

    @pytest.mark.parametrize("event", [
        "junk",
        {"sender": {"id": "111"}, "timestamp": 1, "message": "junk"},
        {"sender": "junk", "timestamp": 1, "message": {"mid": "m_2", "text": "hi"}},
        {"sender": {"id": "111"}, "timestamp": "soon", "message": {"mid": "m_2", "text": "hi"}},
        {"sender": {"id": "111"}, "timestamp": 1, "message": {"mid": "m_2", "text": 5}},
    ])
    def test_bad_event_is_skipped_and_batch_continues(self, received, event):
        payload = messenger_payload("page")
        payload["entry"][0]["messaging"].insert(0, event)

        FacebookAdapter(FacebookConfig(), received.append).handle_webhook(payload)
        assert [m.message_id for m in received] == ["m_1"]

    @pytest.mark.parametrize("entry", ["junk", {"messaging": "junk"}, {"messaging": [None]}])
    def test_malformed_entries_are_ignored(self, received, entry):
        FacebookAdapter(FacebookConfig(), received.append).handle_webhook({"object": "page", "entry": [entry]})
        assert received == []

    @pytest.mark.asyncio
    async def test_facebook_send_uses_page_token(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.return_value = json_response(200, {"recipient_id": "111", "message_id": "m_9"})
        adapter = FacebookAdapter(FacebookConfig(page_access_token="page-token"))

        result = await adapter.send_message("111", "hi")

        assert result.success is True
        mock_client.post.assert_awaited_once_with(
            "https://graph.facebook.com/v18.0/me/messages",
            json={"recipient": {"id": "111"}, "message": {"text": "hi"}},
            params={"access_token": "page-token"},
        )

    @pytest.mark.asyncio
    async def test_graph_error_message(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.return_value = json_response(
            400, {"error": {"message": "Invalid OAuth access token.", "code": 190}}
        )
        adapter = InstagramAdapter(InstagramConfig(access_token="expired"))

        result = await adapter.send_message("111", "hi")

        assert result.success is False
        assert result.error == "Invalid OAuth access token."

    def test_with_credentials_returns_new_adapter(self, received):
        adapter = FacebookAdapter(FacebookConfig(page_access_token="operator"), received.append)
        client_adapter = adapter.with_credentials("client-token")

        assert isinstance(client_adapter, FacebookAdapter)
        assert client_adapter.config.page_access_token == "client-token"
        assert adapter.config.page_access_token == "operator"

        client_adapter.handle_webhook(messenger_payload("page"))
        assert len(received) == 1

    @pytest.mark.parametrize("mode,token,expected", [
        ("subscribe", "verify-me", "challenge-123"),
        ("subscribe", "wrong", None),
        ("unsubscribe", "verify-me", None),
        ("subscribe", None, None),
    ])
    def test_verify_subscription(self, mode, token, expected):
        adapter = FacebookAdapter(FacebookConfig(verify_token="verify-me"))
        assert adapter.verify_subscription(mode, token, "challenge-123") == expected


class TestWhatsApp:
    def payload(self, *messages) -> dict:
        return {
            "object": "whatsapp_business_account",
            "entry": [{
                "id": "WABA",
                "changes": [{
                    "field": "messages",
                    "value": {"messaging_product": "whatsapp", "messages": list(messages)},
                }],
            }],
        }

    def test_text_message(self, received):
        adapter = WhatsAppAdapter(WhatsAppConfig(), received.append)
        adapter.handle_webhook(self.payload({
            "from": "15551234567",
            "id": "wamid.1",
            "timestamp": "1700000000",
            "type": "text",
            "text": {"body": "hey"},
        }))

        assert received[0].platform == "whatsapp"
        assert received[0].sender_id == "15551234567"
        assert received[0].text == "hey"
        assert received[0].timestamp_millis == 1700000000000

    def test_non_text_messages_are_skipped(self, received):
        adapter = WhatsAppAdapter(WhatsAppConfig(), received.append)
        adapter.handle_webhook(self.payload({
            "from": "1", "id": "wamid.2", "timestamp": "1", "type": "image", "image": {},
        }))
        assert received == []

    @pytest.mark.parametrize("message", [
        "junk",
        {"from": "1", "id": "wamid.2", "timestamp": "later", "type": "text", "text": {"body": "hi"}},
        {"from": "1", "id": "wamid.2", "timestamp": "1", "type": "text", "text": "junk"},
        {"from": "1", "id": "wamid.2", "timestamp": "1", "type": "text", "text": {"body": 5}},
    ])
    def test_bad_message_is_skipped_and_batch_continues(self, received, message):
        adapter = WhatsAppAdapter(WhatsAppConfig(), received.append)
        adapter.handle_webhook(self.payload(message, {
            "from": "15551234567", "id": "wamid.1", "timestamp": "1", "type": "text", "text": {"body": "ok"},
        }))

        assert [m.message_id for m in received] == ["wamid.1"]

    @pytest.mark.parametrize("payload", [
        {"entry": "junk"},
        {"entry": ["junk"]},
        {"entry": [{"changes": ["junk"]}]},
        {"entry": [{"changes": [{"field": "messages", "value": "junk"}]}]},
        {"entry": [{"changes": [{"field": "messages", "value": {"messages": "junk"}}]}]},
    ])
    def test_malformed_envelopes_are_ignored(self, received, payload):
        WhatsAppAdapter(WhatsAppConfig(), received.append).handle_webhook(payload)
        assert received == []

    @pytest.mark.asyncio
    async def test_send(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.return_value = json_response(200, {"messages": [{"id": "wamid.9"}]})
        adapter = WhatsAppAdapter(WhatsAppConfig(phone_number_id="PN1", access_token="wa-token"))

        result = await adapter.send_message("15551234567", "hello")

        assert result.success is True
        mock_client.post.assert_awaited_once_with(
            "https://graph.facebook.com/v18.0/PN1/messages",
            json={"messaging_product": "whatsapp", "to": "15551234567", "text": {"body": "hello"}},
            headers={"Authorization": "Bearer wa-token"},
        )


# ===========================================================================
# Slack
# ===========================================================================


class TestSlack:
    def test_message_event(self, received):
        adapter = SlackAdapter(SlackConfig(), received.append)
        adapter.handle_webhook({
            "type": "event_callback",
            "event": {
                "type": "message",
                "user": "U1",
                "text": "hi team",
                "ts": "1700000000.000200",
                "channel": "C1",
            },
        })

        message = received[0]
        assert message.platform == "slack"
        assert message.sender_id == "U1"
        assert message.channel_id == "C1"
        assert message.timestamp_millis == 1700000000000
        assert message.message_id == "1700000000.000200"

    def test_bot_messages_are_ignored(self, received):
        adapter = SlackAdapter(SlackConfig(), received.append)
        adapter.handle_webhook({
            "event": {"type": "message", "bot_id": "B1", "text": "echo", "ts": "1.0", "channel": "C1"},
        })
        adapter.handle_webhook({"event": {"type": "reaction_added", "user": "U1"}})
        adapter.handle_webhook({"type": "url_verification", "challenge": "x"})
        assert received == []

    @pytest.mark.parametrize("event", [
        "junk",
        {"type": "message", "user": 7, "text": "hi", "ts": "1.0", "channel": "C1"},
        {"type": "message", "user": "U1", "text": ["hi"], "ts": "1.0", "channel": "C1"},
        {"type": "message", "user": "U1", "text": "hi", "ts": "1.0", "channel": 5},
    ])
    def test_bad_event_fields_are_ignored(self, received, event):
        adapter = SlackAdapter(SlackConfig(), received.append)
        adapter.handle_webhook({"type": "event_callback", "event": event})
        assert received == []

    @pytest.mark.asyncio
    async def test_send_ok_false_is_a_failure(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.return_value = json_response(200, {"ok": False, "error": "channel_not_found"})
        adapter = SlackAdapter(SlackConfig(bot_token="xoxb-1"))

        result = await adapter.send_message("C404", "hello")

        assert result.success is False
        assert result.error == "channel_not_found"

    @pytest.mark.asyncio
    async def test_send(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.return_value = json_response(200, {"ok": True, "ts": "1.1"})
        adapter = SlackAdapter(SlackConfig(bot_token="xoxb-1"))

        result = await adapter.send_message("C1", "hello")

        assert result.success is True
        mock_client.post.assert_awaited_once_with(
            "https://slack.com/api/chat.postMessage",
            headers={"Authorization": "Bearer xoxb-1"},
            json={"channel": "C1", "text": "hello"},
        )


# ===========================================================================
# Twitter
# ===========================================================================


class TestTwitter:
    def test_direct_message_event(self, received):
        adapter = TwitterAdapter(TwitterConfig(), received.append)
        adapter.handle_webhook({
            "for_user_id": "999",
            "direct_message_events": [{
                "type": "message_create",
                "id": "dm-1",
                "created_timestamp": "1700000000456",
                "message_create": {
                    "sender_id": "321",
                    "target": {"recipient_id": "999"},
                    "message_data": {"text": "hello via DM"},
                },
            }],
        })

        assert received[0].platform == "twitter"
        assert received[0].sender_id == "321"
        assert received[0].timestamp_millis == 1700000000456
        assert received[0].message_id == "dm-1"

    @pytest.mark.parametrize("event", [
        "junk",
        {"type": "message_create", "id": "dm-0", "message_create": "junk"},
        {"type": "message_create", "id": "dm-0", "message_create": {"sender_id": "1", "message_data": "junk"}},
        {
            "type": "message_create",
            "id": "dm-0",
            "created_timestamp": "x",
            "message_create": {"sender_id": "1", "message_data": {"text": "hi"}},
        },
        {
            "type": "message_create",
            "id": "dm-0",
            "created_timestamp": "1",
            "message_create": {"sender_id": "1", "message_data": {"text": 5}},
        },
    ])
    def test_bad_event_is_skipped_and_batch_continues(self, received, event):
        adapter = TwitterAdapter(TwitterConfig(), received.append)
        adapter.handle_webhook({"direct_message_events": [event, {
            "type": "message_create",
            "id": "dm-1",
            "created_timestamp": "1700000000456",
            "message_create": {"sender_id": "321", "message_data": {"text": "hello"}},
        }]})

        assert [m.message_id for m in received] == ["dm-1"]

    def test_missing_event_list_is_ignored(self, received):
        adapter = TwitterAdapter(TwitterConfig(), received.append)
        adapter.handle_webhook({"direct_message_events": "junk"})
        adapter.handle_webhook(None)
        assert received == []

    @pytest.mark.asyncio
    async def test_send_without_token_makes_no_request(self, mock_http):
        mock_client_class, _ = mock_http
        adapter = TwitterAdapter(TwitterConfig())

        result = await adapter.send_message("321", "hello")

        assert result.success is False
        assert result.error == "Twitter access token not configured"
        mock_client_class.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_dm(self, mock_http):
        _, mock_client = mock_http
        mock_client.post.return_value = json_response(201, {"data": {"dm_event_id": "e1"}})
        adapter = TwitterAdapter(TwitterConfig(access_token="user-token"))

        result = await adapter.send_message("321", "hello")

        assert result.success is True
        args, kwargs = mock_client.post.call_args
        assert args[0] == "https://api.twitter.com/2/dm_conversations/with/321/messages"
        assert kwargs["json"] == {"text": "hello"}
        assert kwargs["headers"] == {"Authorization": "Bearer user-token"}
