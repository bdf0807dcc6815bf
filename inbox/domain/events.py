"""Events accepted by the chat reducer. One model per transition."""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from inbox.domain.message import Message
from inbox.domain.raw import RawProviderMessage
from inbox.domain.types import MessageStatus


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class AppendMessage(_Event):
    """Agent-authored message (optimistic send)."""

    kind: Literal["append_message"] = "append_message"
    message: Message


class InboundReply(_Event):
    """Customer-authored message."""

    kind: Literal["inbound_reply"] = "inbound_reply"
    message: Message


class Assign(_Event):
    kind: Literal["assign"] = "assign"
    agent_id: str
    agent_name: Optional[str] = None


class Transfer(_Event):
    kind: Literal["transfer"] = "transfer"
    department_id: str


class Close(_Event):
    kind: Literal["close"] = "close"
    with_survey: bool = False


class AddTag(_Event):
    kind: Literal["add_tag"] = "add_tag"
    tag: str


class RemoveTag(_Event):
    kind: Literal["remove_tag"] = "remove_tag"
    tag: str


class StartWorkflow(_Event):
    kind: Literal["start_workflow"] = "start_workflow"
    workflow_id: str


class ToggleWorkflowStep(_Event):
    kind: Literal["toggle_workflow_step"] = "toggle_workflow_step"
    step_id: str


class CancelWorkflow(_Event):
    kind: Literal["cancel_workflow"] = "cancel_workflow"


class MarkMessageFailed(_Event):
    kind: Literal["mark_message_failed"] = "mark_message_failed"
    message_id: str


class AcknowledgeMessage(_Event):
    """Provider acknowledgment; addresses the message by our id or the provider's."""

    kind: Literal["acknowledge_message"] = "acknowledge_message"
    message_id: Optional[str] = None
    external_id: Optional[str] = None
    status: MessageStatus

    @model_validator(mode="after")
    def _needs_an_id(self):
        if not self.message_id and not self.external_id:
            raise ValueError("message_id or external_id is required")
        return self


class PatchMessage(_Event):
    """Late provider data for a message already in the history."""

    kind: Literal["patch_message"] = "patch_message"
    message_id: str
    external_id: Optional[str] = None
    media_url: Optional[str] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    raw: Optional[RawProviderMessage] = None


class MarkViewed(_Event):
    kind: Literal["mark_viewed"] = "mark_viewed"


class RecordDepartmentPrompt(_Event):
    kind: Literal["record_department_prompt"] = "record_department_prompt"


class SelectDepartment(_Event):
    kind: Literal["select_department"] = "select_department"
    department_id: str


class RecordRating(_Event):
    kind: Literal["record_rating"] = "record_rating"
    rating: int = Field(ge=1, le=5)


class Reopen(_Event):
    kind: Literal["reopen"] = "reopen"


class UpdateContactInfo(_Event):
    kind: Literal["update_contact_info"] = "update_contact_info"
    contact_name: Optional[str] = None
    client_code: Optional[str] = None


ChatEvent = Annotated[
    Union[
        AppendMessage,
        InboundReply,
        Assign,
        Transfer,
        Close,
        AddTag,
        RemoveTag,
        StartWorkflow,
        ToggleWorkflowStep,
        CancelWorkflow,
        MarkMessageFailed,
        AcknowledgeMessage,
        PatchMessage,
        MarkViewed,
        RecordDepartmentPrompt,
        SelectDepartment,
        RecordRating,
        Reopen,
        UpdateContactInfo,
    ],
    Field(discriminator="kind"),
]
