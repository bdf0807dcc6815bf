"""
Chat reducer: the only place a chat snapshot changes.

reduce(chat, event, refs) never mutates `chat`; it returns a new snapshot,
or the very same object when the event changes nothing. Invalid events
raise InvalidEventError and leave the input untouched.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from inbox.application import workflow as wf
from inbox.domain import events as ev
from inbox.domain.chat import Chat
from inbox.domain.errors import InvalidEventError, ReadOnlyChatError
from inbox.domain.message import Message, utcnow
from inbox.domain.reference import Agent, ReferenceData
from inbox.domain.types import ChatStatus, MessageStatus, Sender

logger = logging.getLogger(__name__)

DEPARTMENT_PROMPT_NOTE = (
    "department_selection_sent - Department selection prompt sent to the customer"
)


@dataclass(frozen=True)
class _Context:
    refs: ReferenceData
    actor: Optional[Agent]
    now: datetime


def system_message(content: str, now: datetime) -> Message:
    return Message(
        id=f"sys_{uuid.uuid4().hex}",
        content=content,
        sender=Sender.SYSTEM,
        timestamp=now,
        status=MessageStatus.READ,
    )


def _append(chat: Chat, message: Message, **changes: Any) -> Chat:
    return chat.model_copy(
        update={"messages": chat.messages + (message,), **changes}
    )


def _replace_message(chat: Chat, index: int, message: Message) -> Chat:
    messages = chat.messages[:index] + (message,) + chat.messages[index + 1 :]
    return chat.model_copy(update={"messages": messages})


def _require_open(chat: Chat, action: str) -> None:
    if chat.is_closed:
        raise InvalidEventError(f"Cannot {action}: chat {chat.id} is closed")


def _require_new_message(chat: Chat, message: Message) -> None:
    if chat.message_index(message.id) is not None:
        raise InvalidEventError(f"Message {message.id} is already in chat {chat.id}")
    if message.external_id and chat.find_by_external_id(message.external_id):
        raise InvalidEventError(
            f"Provider message {message.external_id} is already in chat {chat.id}"
        )


def _locate(chat: Chat, message_id: Optional[str], external_id: Optional[str]) -> int:
    index = chat.message_index(message_id) if message_id else None
    if index is None and external_id:
        for i, message in enumerate(chat.messages):
            if message.external_id == external_id:
                index = i
                break
    if index is None:
        raise InvalidEventError(
            f"Message {message_id or external_id} not found in chat {chat.id}"
        )
    return index


# ---------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------
def _append_message(chat: Chat, event: ev.AppendMessage, ctx: _Context) -> Chat:
    message = event.message
    _require_new_message(chat, message)
    return _append(
        chat,
        message,
        last_message=message.preview,
        last_message_time=message.timestamp,
        status=ChatStatus.OPEN,
        unread_count=0,
    )


def _inbound_reply(chat: Chat, event: ev.InboundReply, ctx: _Context) -> Chat:
    message = event.message
    _require_new_message(chat, message)
    unread = chat.unread_count + (1 if message.sender == Sender.USER else 0)
    return _append(
        chat,
        message,
        last_message=message.preview,
        last_message_time=message.timestamp,
        unread_count=unread,
    )


def _assign(chat: Chat, event: ev.Assign, ctx: _Context) -> Chat:
    _require_open(chat, "assign")
    if chat.assigned_to == event.agent_id:
        return chat
    name = event.agent_name
    if not name and ctx.actor and ctx.actor.id == event.agent_id:
        name = ctx.actor.name
    note = system_message(f"Chat claimed by {name or event.agent_id}", ctx.now)
    return _append(chat, note, assigned_to=event.agent_id, status=ChatStatus.OPEN)


def _transfer_to(chat: Chat, department_id: str, ctx: _Context) -> Chat:
    _require_open(chat, "transfer")
    department = ctx.refs.department(department_id)
    if department is None:
        raise InvalidEventError(f"Unknown department: {department_id}")
    note = system_message(f"Chat transferred to {department.name}", ctx.now)
    return _append(chat, note, department_id=department.id, assigned_to=None)


def _transfer(chat: Chat, event: ev.Transfer, ctx: _Context) -> Chat:
    return _transfer_to(chat, event.department_id, ctx)


def _close(chat: Chat, event: ev.Close, ctx: _Context) -> Chat:
    _require_open(chat, "close")
    if event.with_survey:
        text = "Chat closed. A satisfaction survey was sent to the customer."
    else:
        text = "Chat closed by the agent."
    return _append(
        chat,
        system_message(text, ctx.now),
        status=ChatStatus.CLOSED,
        ended_at=ctx.now,
        assigned_to=None,
        active_workflow=None,
        rating=None,
        awaiting_rating=event.with_survey,
    )


def _add_tag(chat: Chat, event: ev.AddTag, ctx: _Context) -> Chat:
    tag = event.tag.strip()
    if not tag:
        raise InvalidEventError("Tag name cannot be empty")
    if tag in chat.tags:
        return chat
    return chat.model_copy(update={"tags": chat.tags + (tag,)})


def _remove_tag(chat: Chat, event: ev.RemoveTag, ctx: _Context) -> Chat:
    tag = event.tag.strip()
    if tag not in chat.tags:
        return chat
    return chat.model_copy(update={"tags": tuple(t for t in chat.tags if t != tag)})


def _start_workflow(chat: Chat, event: ev.StartWorkflow, ctx: _Context) -> Chat:
    _require_open(chat, "start a workflow")
    definition = ctx.refs.workflow(event.workflow_id)
    if definition is None:
        raise InvalidEventError(f"Unknown workflow: {event.workflow_id}")
    return chat.model_copy(update={"active_workflow": wf.start_workflow(definition)})


def _toggle_step(chat: Chat, event: ev.ToggleWorkflowStep, ctx: _Context) -> Chat:
    active = chat.active_workflow
    if active is None:
        raise InvalidEventError(f"Chat {chat.id} has no active workflow")
    definition = ctx.refs.workflow(active.workflow_id)
    if definition is None:
        raise InvalidEventError(f"Unknown workflow: {active.workflow_id}")
    step = definition.step(event.step_id)
    if step is None:
        raise InvalidEventError(
            f"Workflow {definition.id} has no step {event.step_id}"
        )

    toggled = wf.toggle_step(active, step)
    updated = chat.model_copy(update={"active_workflow": toggled.workflow})
    if toggled.effect is not None:
        updated = _transfer_to(updated, toggled.effect.department_id, ctx)
    return updated


def _cancel_workflow(chat: Chat, event: ev.CancelWorkflow, ctx: _Context) -> Chat:
    if chat.active_workflow is None:
        return chat
    return chat.model_copy(update={"active_workflow": None})


def _mark_failed(chat: Chat, event: ev.MarkMessageFailed, ctx: _Context) -> Chat:
    index = _locate(chat, event.message_id, None)
    message = chat.messages[index]
    if message.status == MessageStatus.ERROR:
        return chat
    if message.status != MessageStatus.SENT:
        raise InvalidEventError(
            f"Message {message.id} was already {message.status.value}, cannot fail it"
        )
    return _replace_message(
        chat, index, message.model_copy(update={"status": MessageStatus.ERROR})
    )


def _acknowledge(chat: Chat, event: ev.AcknowledgeMessage, ctx: _Context) -> Chat:
    if event.status not in (MessageStatus.DELIVERED, MessageStatus.READ):
        raise InvalidEventError(f"Not an acknowledgment status: {event.status.value}")
    index = _locate(chat, event.message_id, event.external_id)
    message = chat.messages[index]
    if message.status == MessageStatus.ERROR:
        return chat
    if event.status.rank <= message.status.rank:
        return chat
    return _replace_message(
        chat, index, message.model_copy(update={"status": event.status})
    )


def _patch_message(chat: Chat, event: ev.PatchMessage, ctx: _Context) -> Chat:
    index = _locate(chat, event.message_id, None)
    message = chat.messages[index]
    fields = ("external_id", "media_url", "mime_type", "file_name", "raw")
    changes = {
        name: getattr(event, name)
        for name in fields
        if getattr(event, name) is not None
        and getattr(event, name) != getattr(message, name)
    }
    if not changes:
        return chat
    return _replace_message(chat, index, message.model_copy(update=changes))


def _mark_viewed(chat: Chat, event: ev.MarkViewed, ctx: _Context) -> Chat:
    if chat.unread_count == 0:
        return chat
    return chat.model_copy(update={"unread_count": 0})


def _record_prompt(
    chat: Chat, event: ev.RecordDepartmentPrompt, ctx: _Context
) -> Chat:
    if chat.department_selection_sent:
        return chat
    return _append(
        chat,
        system_message(DEPARTMENT_PROMPT_NOTE, ctx.now),
        department_selection_sent=True,
        awaiting_department_selection=True,
    )


def _select_department(
    chat: Chat, event: ev.SelectDepartment, ctx: _Context
) -> Chat:
    if not chat.awaiting_department_selection:
        raise InvalidEventError(f"Chat {chat.id} is not waiting for a department")
    updated = _transfer_to(chat, event.department_id, ctx)
    return updated.model_copy(update={"awaiting_department_selection": False})


def _record_rating(chat: Chat, event: ev.RecordRating, ctx: _Context) -> Chat:
    if not chat.awaiting_rating:
        raise InvalidEventError(f"Chat {chat.id} is not waiting for a rating")
    note = system_message(f"Customer rated the service {event.rating}/5", ctx.now)
    return _append(chat, note, rating=event.rating, awaiting_rating=False)


def _reopen(chat: Chat, event: ev.Reopen, ctx: _Context) -> Chat:
    if not chat.is_closed:
        raise InvalidEventError(f"Chat {chat.id} is not closed")
    # back to triage: unclaimed, no department, prompt may go out again
    return _append(
        chat,
        system_message("Chat reopened by a new customer message", ctx.now),
        status=ChatStatus.OPEN,
        department_id=None,
        assigned_to=None,
        active_workflow=None,
        ended_at=None,
        awaiting_rating=False,
        department_selection_sent=False,
        awaiting_department_selection=False,
    )


def _update_contact(chat: Chat, event: ev.UpdateContactInfo, ctx: _Context) -> Chat:
    changes: Dict[str, Any] = {}
    if event.contact_name is not None and event.contact_name != chat.contact_name:
        changes["contact_name"] = event.contact_name
    if event.client_code is not None and event.client_code != chat.client_code:
        changes["client_code"] = event.client_code
    if not changes:
        return chat
    return chat.model_copy(update=changes)


_HANDLERS: Dict[type, Callable[[Chat, Any, _Context], Chat]] = {
    ev.AppendMessage: _append_message,
    ev.InboundReply: _inbound_reply,
    ev.Assign: _assign,
    ev.Transfer: _transfer,
    ev.Close: _close,
    ev.AddTag: _add_tag,
    ev.RemoveTag: _remove_tag,
    ev.StartWorkflow: _start_workflow,
    ev.ToggleWorkflowStep: _toggle_step,
    ev.CancelWorkflow: _cancel_workflow,
    ev.MarkMessageFailed: _mark_failed,
    ev.AcknowledgeMessage: _acknowledge,
    ev.PatchMessage: _patch_message,
    ev.MarkViewed: _mark_viewed,
    ev.RecordDepartmentPrompt: _record_prompt,
    ev.SelectDepartment: _select_department,
    ev.RecordRating: _record_rating,
    ev.Reopen: _reopen,
    ev.UpdateContactInfo: _update_contact,
}

# events that touch messages or the claim; the holder (or an admin) only
_HOLDER_ONLY = (
    ev.AppendMessage,
    ev.Assign,
    ev.Transfer,
    ev.Close,
    ev.StartWorkflow,
    ev.ToggleWorkflowStep,
    ev.CancelWorkflow,
)


def check_holder(chat: Chat, actor: Optional[Agent]) -> None:
    """Raise ReadOnlyChatError when `actor` may only look at `chat`."""
    if actor is None or actor.is_admin:
        return
    if chat.assigned_to and chat.assigned_to != actor.id:
        raise ReadOnlyChatError(
            "This chat is being handled by another agent. You have read-only access."
        )


def reduce(
    chat: Chat,
    event: ev.ChatEvent,
    refs: ReferenceData,
    *,
    actor: Optional[Agent] = None,
    now: Optional[datetime] = None,
) -> Chat:
    """
    Apply one event to one snapshot.
    `actor` is the agent behind the event; None means the provider or the system.
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise InvalidEventError(f"Unsupported event: {type(event).__name__}")
    if isinstance(event, _HOLDER_ONLY):
        check_holder(chat, actor)
    return handler(chat, event, _Context(refs=refs, actor=actor, now=now or utcnow()))
