"""Reference data owned by the CRUD surfaces; this core only looks it up by id."""

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict


class AgentRole(str, Enum):
    ADMIN = "ADMIN"
    AGENT = "AGENT"


class Agent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    role: AgentRole = AgentRole.AGENT
    department_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == AgentRole.ADMIN


class Department(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    color: str = ""


class WorkflowStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    target_department_id: Optional[str] = None  # set on transfer steps

    @property
    def is_transfer(self) -> bool:
        return bool(self.target_department_id)


class Workflow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    steps: Tuple[WorkflowStep, ...] = ()

    def step(self, step_id: str) -> Optional[WorkflowStep]:
        return next((s for s in self.steps if s.id == step_id), None)


class Contact(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    phone: str
    email: Optional[str] = None


class ReferenceData(BaseModel):
    model_config = ConfigDict(frozen=True)

    departments: Tuple[Department, ...] = ()
    workflows: Tuple[Workflow, ...] = ()
    contacts: Tuple[Contact, ...] = ()

    def department(self, department_id: Optional[str]) -> Optional[Department]:
        if not department_id:
            return None
        return next((d for d in self.departments if d.id == department_id), None)

    def workflow(self, workflow_id: str) -> Optional[Workflow]:
        return next((w for w in self.workflows if w.id == workflow_id), None)

    def contact(self, contact_id: str) -> Optional[Contact]:
        return next((c for c in self.contacts if c.id == contact_id), None)
