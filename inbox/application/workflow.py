"""Handling lifecycle of a chat and the workflow checklist layered on top of it."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from inbox.domain.chat import ActiveWorkflow, Chat
from inbox.domain.reference import Workflow, WorkflowStep


class HandlingState(str, Enum):
    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"
    CLOSED = "closed"


def handling_state(chat: Chat) -> HandlingState:
    if chat.is_closed:
        return HandlingState.CLOSED
    if chat.assigned_to:
        return HandlingState.CLAIMED
    return HandlingState.UNCLAIMED


@dataclass(frozen=True)
class TransferEffect:
    """A step completion that also hands the chat to another department."""

    department_id: str


@dataclass(frozen=True)
class StepToggle:
    workflow: ActiveWorkflow
    completed: bool
    effect: Optional[TransferEffect] = None


def start_workflow(workflow: Workflow) -> ActiveWorkflow:
    return ActiveWorkflow(workflow_id=workflow.id, completed_step_ids=())


def toggle_step(active: ActiveWorkflow, step: WorkflowStep) -> StepToggle:
    done = active.completed_step_ids
    if step.id in done:
        remaining = tuple(s for s in done if s != step.id)
        return StepToggle(
            workflow=active.model_copy(update={"completed_step_ids": remaining}),
            completed=False,
        )

    effect = None
    if step.is_transfer:
        effect = TransferEffect(department_id=step.target_department_id)
    return StepToggle(
        workflow=active.model_copy(update={"completed_step_ids": done + (step.id,)}),
        completed=True,
        effect=effect,
    )
