"""Fallback order of the raw provider payload accessor."""

from inbox.domain.message import Message
from inbox.domain.raw import RawProviderMessage
from inbox.domain.types import MessageType, Sender


def raw(**data) -> RawProviderMessage:
    return RawProviderMessage.model_validate(data)


class TestMediaUrl:
    def test_nested_media_node_wins(self):
        payload = raw(
            message={
                "imageMessage": {"url": "nested", "directPath": "/path"},
                "url": "body",
            },
            imageMessage={"url": "top-node"},
            url="top",
        )
        assert payload.media_url(MessageType.IMAGE) == "nested"

    def test_media_url_and_direct_path_alternates(self):
        assert (
            raw(message={"audioMessage": {"mediaUrl": "m"}}).media_url(
                MessageType.AUDIO
            )
            == "m"
        )
        assert (
            raw(message={"audioMessage": {"directPath": "/d"}}).media_url(
                MessageType.AUDIO
            )
            == "/d"
        )

    def test_top_level_node_then_body_then_envelope(self):
        assert raw(videoMessage={"url": "node"}, url="top").media_url(
            MessageType.VIDEO
        ) == "node"
        assert raw(message={"mediaUrl": "body"}, url="top").media_url(
            MessageType.VIDEO
        ) == "body"
        assert raw(mediaUrl="top").media_url(MessageType.VIDEO) == "top"

    def test_blank_values_are_skipped(self):
        payload = raw(message={"imageMessage": {"url": "  "}}, url="top")
        assert payload.media_url(MessageType.IMAGE) == "top"

    def test_nested_data_envelope_is_last(self):
        payload = raw(data={"message": {"documentMessage": {"url": "inner"}}})
        assert payload.media_url(MessageType.DOCUMENT) == "inner"
        outer = raw(url="outer", data={"url": "inner"})
        assert outer.media_url(MessageType.DOCUMENT) == "outer"

    def test_nothing_found(self):
        assert raw(message={"conversation": "hi"}).media_url(MessageType.IMAGE) is None


class TestContent:
    def test_text_sources(self):
        assert raw(message={"conversation": "a"}).text() == "a"
        assert raw(message={"extendedTextMessage": {"text": "b"}}).text() == "b"
        assert raw(message={"videoMessage": {"caption": "c"}}).text() == "c"
        assert raw().text() == ""

    def test_detect_type(self):
        assert raw(message={"stickerMessage": {}}).detect_type() == MessageType.STICKER
        assert raw(messageType="contactMessage").detect_type() == MessageType.CONTACT
        assert raw(message={"conversation": "x"}).detect_type() == MessageType.TEXT

    def test_unknown_fields_survive(self):
        payload = raw(key={"id": "1", "extra": "kept"}, contextInfo={"a": 1})
        dumped = payload.model_dump(exclude_none=True)
        assert dumped["key"]["extra"] == "kept"
        assert dumped["contextInfo"] == {"a": 1}


class TestMessageMedia:
    def test_explicit_field_preferred(self):
        msg = Message(
            id="m",
            sender=Sender.USER,
            type=MessageType.IMAGE,
            media_url="explicit",
            raw={"url": "raw"},
        )
        assert msg.resolved_media_url() == "explicit"

    def test_raw_fallback(self):
        msg = Message(
            id="m", sender=Sender.USER, type=MessageType.IMAGE, raw={"url": "raw"}
        )
        assert msg.resolved_media_url() == "raw"
