from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

Priority = Literal["LOW", "MEDIUM", "HIGH"]


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
    requestId: Optional[str] = None


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str


class UserOut(BaseModel):
    id: str
    email: str
    role: str


class _NonEmptyPatch(BaseModel):
    @model_validator(mode="after")
    def _at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided.")
        return self


class ReorderIn(BaseModel):
    beforeId: Optional[str] = None
    afterId: Optional[str] = None


# === Boards ===


class BoardIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=1000)


class BoardPatch(_NonEmptyPatch):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=1000)


class BoardOut(BaseModel):
    id: str
    name: str
    description: Optional[str]
    position: str
    createdAt: datetime
    updatedAt: datetime


# === Columns ===


class ColumnIn(BaseModel):
    boardId: str
    title: str = Field(min_length=1, max_length=120)


class ColumnPatch(_NonEmptyPatch):
    title: Optional[str] = Field(default=None, min_length=1, max_length=120)
    boardId: Optional[str] = None


class ColumnReorder(ReorderIn):
    boardId: str


class ColumnOut(BaseModel):
    id: str
    boardId: str
    title: str
    position: str
    createdAt: datetime


# === Tasks ===


class TaskIn(BaseModel):
    columnId: str
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    assigneeName: Optional[str] = Field(default=None, min_length=1, max_length=120)
    priority: Priority = "MEDIUM"


class TaskPatch(_NonEmptyPatch):
    columnId: Optional[str] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    assigneeName: Optional[str] = Field(default=None, min_length=1, max_length=120)
    priority: Optional[Priority] = None


class TaskReorder(ReorderIn):
    columnId: str


class TaskOut(BaseModel):
    id: str
    columnId: str
    title: str
    description: Optional[str]
    assigneeName: Optional[str]
    priority: str
    position: str
    createdAt: datetime


class ColumnWithTasks(ColumnOut):
    tasks: list[TaskOut]


class BoardFull(BoardOut):
    columns: list[ColumnWithTasks]


# === Admin ===


class Totals(BaseModel):
    users: int
    boards: int
    columns: int
    tasks: int


class PriorityCount(BaseModel):
    priority: str
    count: int


class UserBoardCount(BaseModel):
    userId: str
    email: str
    role: str
    boardCount: int


class AdminStats(BaseModel):
    totals: Totals
    taskPriorityBreakdown: list[PriorityCount]
    topUsersByBoardCount: list[UserBoardCount]
