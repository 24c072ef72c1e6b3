from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from taskmanager.schemas.common import CamelModel, UtcDatetime, enforce
from taskmanager.utils import validation as rules


def _optional_description(v):
    # null means no description
    if v is None:
        return ""
    return enforce(rules.trimmed_length(v, 0, 500, "Description must not exceed 500 characters"))


def _optional_due_date(v):
    # explicit null is allowed and clears the due date
    if v is None:
        return None
    return enforce(rules.due_date(v))


class TaskCreate(CamelModel):
    title: str = Field(default=None, validate_default=True)
    description: str = ""
    priority: Optional[str] = None
    due_date: Optional[datetime] = None

    @field_validator("title", mode="before")
    @classmethod
    def title_length(cls, v):
        return enforce(
            rules.trimmed_length(v, 1, 100, "Title is required and must not exceed 100 characters")
        )

    @field_validator("description", mode="before")
    @classmethod
    def description_length(cls, v):
        return _optional_description(v)

    @field_validator("priority", mode="before")
    @classmethod
    def priority_value(cls, v):
        return enforce(rules.priority(v))

    @field_validator("due_date", mode="before")
    @classmethod
    def due_date_future(cls, v):
        return _optional_due_date(v)


class TaskUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None
    priority: Optional[str] = None
    due_date: Optional[datetime] = None

    @field_validator("title", mode="before")
    @classmethod
    def title_length(cls, v):
        return enforce(rules.trimmed_length(v, 1, 100, "Title must be between 1 and 100 characters"))

    @field_validator("description", mode="before")
    @classmethod
    def description_length(cls, v):
        return _optional_description(v)

    @field_validator("completed", mode="before")
    @classmethod
    def completed_flag(cls, v):
        return enforce(rules.boolean_like(v, "Completed must be a boolean value"))

    @field_validator("priority", mode="before")
    @classmethod
    def priority_value(cls, v):
        return enforce(rules.priority(v))

    @field_validator("due_date", mode="before")
    @classmethod
    def due_date_future(cls, v):
        return _optional_due_date(v)


class TaskQuery(CamelModel):
    """Filters and paging accepted by ``GET /api/tasks``."""

    completed: Optional[bool] = None
    priority: Optional[str] = None
    search: Optional[str] = None
    page: int = 1
    limit: int = 10

    @field_validator("completed", mode="before")
    @classmethod
    def completed_flag(cls, v):
        return enforce(rules.boolean_like(v, "Completed must be true or false"))

    @field_validator("priority", mode="before")
    @classmethod
    def priority_value(cls, v):
        return enforce(rules.priority(v))

    @field_validator("search", mode="before")
    @classmethod
    def search_length(cls, v):
        return enforce(
            rules.trimmed_length(v, 1, 100, "Search term must be between 1 and 100 characters")
        )

    @field_validator("page", mode="before")
    @classmethod
    def page_number(cls, v):
        return enforce(rules.bounded_int(v, 1, None, "Page must be a positive integer"))

    @field_validator("limit", mode="before")
    @classmethod
    def page_size(cls, v):
        return enforce(rules.bounded_int(v, 1, 100, "Limit must be between 1 and 100"))


class TaskOwner(CamelModel):
    id: str
    name: str
    email: str


class TaskOut(CamelModel):
    id: str
    title: str
    description: str = ""
    completed: bool
    priority: str
    due_date: Optional[UtcDatetime] = None
    user: TaskOwner
    created_at: UtcDatetime
    updated_at: UtcDatetime


def serialize_task(task) -> dict:
    return TaskOut.model_validate(task).model_dump(by_alias=True, mode="json")
