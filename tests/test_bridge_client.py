"""Bridge HTTP adapter tests (httpx MockTransport, no network)."""

import asyncio
import json

import httpx
import pytest

from helpers import CONTACT, b64
from wadesk.infra.settings import Settings
from wadesk.whatsapp.bridge_client import BridgeClient
from wadesk.whatsapp.client import BridgeError
from wadesk.whatsapp.media import MediaRef


def _client(handler, **settings):
    settings.setdefault("bridge_url", "http://bridge")
    return BridgeClient(Settings(**settings), transport=httpx.MockTransport(handler))


def _run(coro_factory):
    return asyncio.run(coro_factory())


class TestRequests:
    def test_api_key_header_and_chat_path_escaped(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[{"id": {"_serialized": "m1"}}])

        client = _client(handler, bridge_api_key="k-1")
        records = _run(lambda: client.fetch_messages(CONTACT, 25))

        assert records == [{"id": {"_serialized": "m1"}}]
        request = seen[0]
        assert request.headers["apikey"] == "k-1"
        assert request.url.path == "/chats/15551234567@c.us/messages"
        assert request.url.params["limit"] == "25"

    def test_missing_chat_is_none(self):
        client = _client(lambda request: httpx.Response(404))
        assert _run(lambda: client.get_chat(CONTACT)) is None

    def test_error_status_raises(self):
        client = _client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(BridgeError, match="500"):
            _run(client.get_chats)

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        client = _client(handler)
        with pytest.raises(BridgeError, match="unreachable"):
            _run(client.get_contacts)


class TestSend:
    def test_text_body(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": {"_serialized": "s1"}})

        client = _client(handler)
        _run(lambda: client.send_message(CONTACT, "hi"))
        assert bodies == [{"options": {}, "text": "hi"}]

    def test_media_body(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={})

        media = MediaRef(mime_type="audio/ogg", encoded_payload=b64(200), filename="v.ogg")
        client = _client(handler)
        _run(lambda: client.send_message(CONTACT, media, {"sendAudioAsVoice": True}))
        assert bodies[0]["options"] == {"sendAudioAsVoice": True}
        assert bodies[0]["media"] == {"mimetype": "audio/ogg", "data": b64(200), "filename": "v.ogg"}


class TestSmallEndpoints:
    def test_profile_pic_url(self):
        client = _client(lambda request: httpx.Response(200, json={"url": "https://pps.example/a.jpg"}))
        assert _run(lambda: client.get_chat_profile_pic_url(CONTACT)) == "https://pps.example/a.jpg"

    def test_send_seen(self):
        client = _client(lambda request: httpx.Response(200, json={"success": True}))
        assert _run(lambda: client.send_seen(CONTACT)) is True

    def test_destroy_stops_session(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(204)

        client = _client(handler)

        async def scenario():
            await client.initialize()
            await client.destroy()

        asyncio.run(scenario())
        assert paths == ["/session/start", "/session/stop"]


class TestBadBodies:
    def test_undecodable_body_raises_bridge_error(self):
        client = _client(
            lambda request: httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"junk")
        )
        with pytest.raises(BridgeError, match="unreadable"):
            _run(lambda: client.download_media(CONTACT, "m1"))

    def test_non_json_body_raises_bridge_error(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(BridgeError, match="non-JSON"):
            _run(client.get_chats)

    def test_list_where_object_expected(self):
        client = _client(lambda request: httpx.Response(200, json=[{"data": "AAAA"}]))
        with pytest.raises(BridgeError, match="unexpected list"):
            _run(lambda: client.download_media(CONTACT, "m1"))

    def test_object_where_list_expected(self):
        client = _client(lambda request: httpx.Response(200, json={"chats": []}))
        with pytest.raises(BridgeError, match="unexpected dict"):
            _run(client.get_chats)
