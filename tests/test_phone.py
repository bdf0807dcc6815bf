"""Tests for resolving the number an outbound message goes to."""

from inbox.application.phone import (
    digits_only,
    is_group_or_broadcast,
    is_placeholder,
    resolve_target_number,
)


class TestHelpers:
    def test_digits_only(self):
        assert digits_only("+55 (11) 99999-8888") == "5511999998888"
        assert digits_only(None) == ""

    def test_placeholders(self):
        assert is_placeholder("chat_abc123")
        assert is_placeholder("cmin_xyz")
        assert not is_placeholder("5511999998888@s.whatsapp.net")

    def test_group_and_broadcast_markers(self):
        assert is_group_or_broadcast("120363025@g.us")
        assert is_group_or_broadcast("245112233@lid")
        assert is_group_or_broadcast("status@broadcast")
        assert not is_group_or_broadcast("5511999998888@s.whatsapp.net")


class TestResolveTargetNumber:
    """Evidence ordering and rejection of look-alike ids."""

    def test_personal_chat_id(self, make_chat):
        chat = make_chat(
            id="5511999998888@s.whatsapp.net", contact_number="5511999998888"
        )
        assert resolve_target_number(chat) == "5511999998888"

    def test_placeholder_id_falls_back_to_message_author(self, make_chat, make_message):
        chat = make_chat(
            id="chat_abc123",
            contact_number="",
            messages=(make_message(author="5511988887777@s.whatsapp.net"),),
        )
        assert resolve_target_number(chat) == "5511988887777"

    def test_group_without_usable_evidence_is_blocked(self, make_chat, make_message):
        chat = make_chat(
            id="120363025551234@g.us",
            contact_number="cmin_xyz",
            messages=(make_message(author="120363025551234@g.us"),),
        )
        assert resolve_target_number(chat) == ""

    def test_longer_author_number_wins_over_chat_id(self, make_chat, make_message):
        chat = make_chat(
            id="1199998888@s.whatsapp.net",
            messages=(make_message(author="5511999998888@s.whatsapp.net"),),
        )
        assert resolve_target_number(chat) == "5511999998888"

    def test_shorter_author_does_not_replace_chat_id(self, make_chat, make_message):
        chat = make_chat(
            id="5511999998888@s.whatsapp.net",
            messages=(make_message(author="1199998888@s.whatsapp.net"),),
        )
        assert resolve_target_number(chat) == "5511999998888"

    def test_newest_author_is_preferred(self, make_chat, make_message):
        chat = make_chat(
            id="chat_1",
            contact_number="",
            messages=(
                make_message(author="5511911112222@s.whatsapp.net"),
                make_message(author="5511933334444@s.whatsapp.net"),
            ),
        )
        assert resolve_target_number(chat) == "5511933334444"

    def test_broadcast_list_authors_are_skipped(self, make_chat, make_message):
        chat = make_chat(
            id="chat_1",
            contact_number="",
            messages=(make_message(author="5511933334444@lid"),),
        )
        assert resolve_target_number(chat) == ""

    def test_formatted_contact_number(self, make_chat):
        chat = make_chat(id="chat_1", contact_number="+55 (11) 97777-6666")
        assert resolve_target_number(chat) == "5511977776666"

    def test_contact_number_with_letters_is_rejected(self, make_chat):
        chat = make_chat(id="chat_1", contact_number="Joao 5511977776666")
        assert resolve_target_number(chat) == ""

    def test_bare_numeral_chat_id(self, make_chat):
        chat = make_chat(id="5511977776666", contact_number="")
        assert resolve_target_number(chat) == "5511977776666"

    def test_fifteen_digit_id_is_never_returned(self, make_chat):
        chat = make_chat(id="551199999888877@s.whatsapp.net", contact_number="")
        assert resolve_target_number(chat) == ""

    def test_too_long_contact_number_is_rejected(self, make_chat):
        chat = make_chat(id="chat_1", contact_number="551199999888877")
        assert resolve_target_number(chat) == ""

    def test_short_numbers_are_never_returned(self, make_chat, make_message):
        chat = make_chat(
            id="999998888@s.whatsapp.net",
            contact_number="99998888",
            messages=(make_message(author="999998888@s.whatsapp.net"),),
        )
        assert resolve_target_number(chat) == ""

    def test_long_id_falls_back_to_valid_contact_number(self, make_chat):
        chat = make_chat(
            id="551199999888877@s.whatsapp.net", contact_number="5511999998888"
        )
        assert resolve_target_number(chat) == "5511999998888"
