from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from inbox.domain.message import Message, utcnow
from inbox.domain.types import ChatStatus


class ActiveWorkflow(BaseModel):
    model_config = ConfigDict(frozen=True)

    workflow_id: str
    completed_step_ids: Tuple[str, ...] = ()


class Chat(BaseModel):
    """
    Immutable snapshot of one customer conversation.
    New snapshots are produced by the reducer, never by editing this one.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    contact_name: str = ""
    contact_number: str = ""
    contact_avatar: Optional[str] = None
    client_code: Optional[str] = None
    department_id: Optional[str] = None
    assigned_to: Optional[str] = None
    status: ChatStatus = ChatStatus.OPEN
    unread_count: int = Field(default=0, ge=0)
    last_message: str = ""
    last_message_time: datetime = Field(default_factory=utcnow)
    messages: Tuple[Message, ...] = ()
    tags: Tuple[str, ...] = ()
    active_workflow: Optional[ActiveWorkflow] = None
    department_selection_sent: bool = False
    awaiting_department_selection: bool = False
    ended_at: Optional[datetime] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    awaiting_rating: bool = False

    @property
    def is_closed(self) -> bool:
        return self.status == ChatStatus.CLOSED

    def message_index(self, message_id: str) -> Optional[int]:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return None

    def find_message(self, message_id: str) -> Optional[Message]:
        index = self.message_index(message_id)
        return None if index is None else self.messages[index]

    def find_by_external_id(self, external_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.external_id == external_id:
                return message
        return None
