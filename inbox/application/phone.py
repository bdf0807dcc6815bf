import logging
import re

from inbox.domain.chat import Chat

logger = logging.getLogger(__name__)

MIN_DIGITS = 10
MAX_DIGITS = 14  # longer ids are broadcast lists, not phones

GROUP_MARKERS = ("@g.us",)
BROADCAST_MARKERS = ("@lid", "@broadcast")
PLACEHOLDER_PREFIX = "chat_"
PLACEHOLDER_MARKER = "cmin"

_NON_DIGIT = re.compile(r"\D")
_LETTER = re.compile(r"[^\W\d_]")


def digits_only(value: str | None) -> str:
    return _NON_DIGIT.sub("", value or "")


def is_placeholder(value: str | None) -> bool:
    """Ids minted locally before the provider told us who the contact is."""
    value = value or ""
    return value.startswith(PLACEHOLDER_PREFIX) or PLACEHOLDER_MARKER in value


def is_group_or_broadcast(address: str | None) -> bool:
    address = address or ""
    return any(marker in address for marker in GROUP_MARKERS + BROADCAST_MARKERS)


def local_part(address: str) -> str:
    return address.split("@", 1)[0]


def _in_range(digits: str) -> bool:
    return MIN_DIGITS <= len(digits) <= MAX_DIGITS


def _usable_contact_number(value: str) -> bool:
    return bool(value) and not _LETTER.search(value) and not is_placeholder(value)


def resolve_target_number(chat: Chat) -> str:
    """
    Derive the number to send to, digits only, or "" when there is none.

    Evidence, strongest first:
      1) chat id, when it is a personal provider address
      2) message authors, newest first; a longer number is a more complete one
      3) stored contact number
      4) chat id local part, when it is a bare numeral
      5) stored contact number again, without the upper bound
    Stages 3 to 5 only run while nothing has been accepted.
    """
    best = ""

    if (
        "@" in chat.id
        and not is_group_or_broadcast(chat.id)
        and not is_placeholder(chat.id)
    ):
        digits = digits_only(local_part(chat.id))
        if _in_range(digits):
            best = digits
        elif len(digits) > MAX_DIGITS:
            logger.debug("[phone] chat id too long, likely a list: %s", chat.id)

    for message in reversed(chat.messages):
        author = message.author
        if not author or is_group_or_broadcast(author):
            continue
        digits = digits_only(local_part(author))
        if _in_range(digits) and len(digits) > len(best):
            logger.debug("[phone] using author %s for chat=%s", author, chat.id)
            best = digits
            break

    if not best and _usable_contact_number(chat.contact_number):
        digits = digits_only(chat.contact_number)
        if _in_range(digits):
            best = digits

    if not best and not is_group_or_broadcast(chat.id):
        local = local_part(chat.id)
        if not is_placeholder(local) and local.isdigit() and _in_range(local):
            best = local

    if not best:
        digits = digits_only(chat.contact_number)
        if _usable_contact_number(chat.contact_number) and len(digits) >= MIN_DIGITS:
            best = digits
        else:
            logger.error(
                "[phone] no usable number: chat_id=%s contact_number=%r messages=%d",
                chat.id,
                chat.contact_number,
                len(chat.messages),
            )
            return ""

    if not _in_range(best):
        logger.error(
            "[phone] rejected %s (%d digits) for chat=%s", best, len(best), chat.id
        )
        return ""
    return best
