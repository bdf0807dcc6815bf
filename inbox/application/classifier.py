from enum import Enum
from typing import Dict, Iterable, List, Optional

from inbox.domain.chat import Chat
from inbox.domain.types import ChatStatus


class Tab(str, Enum):
    TODO = "todo"
    WAITING = "waiting"  # awaiting triage
    CLOSED = "closed"


def is_awaiting_triage(chat: Chat) -> bool:
    return chat.department_id is None and chat.assigned_to is None


def is_assigned(chat: Chat, agent_id: Optional[str]) -> bool:
    return (
        agent_id is not None and chat.assigned_to == agent_id
    ) or chat.department_id is not None


def belongs_to_tab(chat: Chat, agent_id: Optional[str], tab: Tab) -> bool:
    """Does `chat` show up under `tab` for the agent `agent_id`."""
    if tab == Tab.CLOSED:
        return chat.status == ChatStatus.CLOSED
    if chat.status == ChatStatus.CLOSED:
        return False
    if tab == Tab.WAITING:
        return is_awaiting_triage(chat)
    if tab == Tab.TODO:
        return is_assigned(chat, agent_id)
    return False


def matches_search(chat: Chat, text: str) -> bool:
    needle = (text or "").strip().lower()
    if not needle:
        return True
    haystack = (chat.contact_name, chat.contact_number, chat.client_code or "")
    return any(needle in (value or "").lower() for value in haystack)


def list_tab(
    chats: Iterable[Chat], agent_id: Optional[str], tab: Tab, search: str = ""
) -> List[Chat]:
    """Chats of one tab, newest activity first."""
    selected = [
        chat
        for chat in chats
        if matches_search(chat, search) and belongs_to_tab(chat, agent_id, tab)
    ]
    selected.sort(key=lambda c: c.last_message_time, reverse=True)
    return selected


def tab_counts(
    chats: Iterable[Chat], agent_id: Optional[str], search: str = ""
) -> Dict[Tab, int]:
    chats = list(chats)
    return {tab: len(list_tab(chats, agent_id, tab, search)) for tab in Tab}
