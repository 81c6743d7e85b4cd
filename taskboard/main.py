import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .auth import get_current_user, require_role
from .config import settings
from .db import Board, ColumnModel, Task, User, get_session, init_db
from .errors import ApiError, Forbidden, NotFound
from .logging_config import setup_logging
from .models import AuthenticatedUser
from .schemas import (
    AdminStats,
    BoardFull,
    BoardIn,
    BoardOut,
    BoardPatch,
    ColumnIn,
    ColumnOut,
    ColumnPatch,
    ColumnReorder,
    ColumnWithTasks,
    Health,
    PriorityCount,
    ReorderIn,
    TaskIn,
    TaskOut,
    TaskPatch,
    TaskReorder,
    Totals,
    UserBoardCount,
    UserOut,
    Version,
)
from .storage import board_siblings, column_siblings, run_in_scope_transaction, task_siblings
from .utils import new_uuid, position_str

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    setup_logging()
    init_db()
    yield


app = FastAPI(title=settings.api_title, version=settings.api_version, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


# === Error handling ===


def error_response(request: Request, status_code: int, code: str, message: str, details: Optional[dict] = None):
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
                "requestId": request.headers.get("X-Request-ID") or new_uuid(),
            }
        },
    )


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError):
    return error_response(request, exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    issues = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return error_response(request, 400, "BAD_REQUEST", "Request validation failed.", {"issues": issues})


@app.exception_handler(IntegrityError)
async def handle_integrity_error(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return error_response(request, 409, "CONFLICT", "Unique constraint or relation violation.")


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(request, 500, "INTERNAL_SERVER_ERROR", "Something went wrong.")


# === Helpers ===


def board_out(board: Board) -> BoardOut:
    return BoardOut(
        id=board.id,
        name=board.name,
        description=board.description,
        position=position_str(board.position),
        createdAt=board.created_at,
        updatedAt=board.updated_at,
    )


def column_out(column: ColumnModel) -> ColumnOut:
    return ColumnOut(
        id=column.id,
        boardId=column.board_id,
        title=column.title,
        position=position_str(column.position),
        createdAt=column.created_at,
    )


def task_out(task: Task) -> TaskOut:
    return TaskOut(
        id=task.id,
        columnId=task.column_id,
        title=task.title,
        description=task.description,
        assigneeName=task.assignee_name,
        priority=task.priority,
        position=position_str(task.position),
        createdAt=task.created_at,
    )


def assert_ownership(user: AuthenticatedUser, owner_id: str) -> None:
    if not user.is_admin and user.id != owner_id:
        raise Forbidden()


def get_owned_board(session: Session, board_id: str, user: AuthenticatedUser) -> Board:
    board = session.get(Board, board_id)
    if board is None or board.owner_user_id != user.id:
        raise NotFound("Board not found.")
    return board


def require_board_access(
    session: Session, board_id: str, user: AuthenticatedUser, message: str = "Board not found."
) -> Board:
    board = session.get(Board, board_id)
    if board is None:
        raise NotFound(message)
    assert_ownership(user, board.owner_user_id)
    return board


def require_column_access(
    session: Session, column_id: str, user: AuthenticatedUser, message: str = "Column not found."
) -> ColumnModel:
    column = session.get(ColumnModel, column_id)
    if column is None:
        raise NotFound(message)
    assert_ownership(user, column.board.owner_user_id)
    return column


def require_task_access(session: Session, task_id: str, user: AuthenticatedUser) -> Task:
    task = session.get(Task, task_id)
    if task is None:
        raise NotFound("Task not found.")
    assert_ownership(user, task.column.board.owner_user_id)
    return task


def strip_or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


# === Health & metadata ===


@app.get("/v1/health", response_model=Health)
def health() -> Health:
    return Health()


@app.get("/v1/version", response_model=Version)
def version() -> Version:
    return Version(version=settings.api_version)


@app.get("/v1/me", response_model=UserOut)
def me(user: AuthenticatedUser = Depends(get_current_user)):
    return UserOut(id=user.id, email=user.email, role=user.role)


# === Board endpoints ===


@app.get("/v1/boards", response_model=list[BoardOut])
def list_boards(
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    boards = session.scalars(
        select(Board).where(Board.owner_user_id == user.id).order_by(Board.position, Board.id)
    )
    return [board_out(b) for b in boards]


@app.post("/v1/boards", response_model=BoardOut, status_code=201)
def create_board(
    payload: BoardIn,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    def create(resolver) -> str:
        board = Board(
            owner_user_id=user.id,
            name=payload.name.strip(),
            description=strip_or_none(payload.description),
            position=resolver.compute_append_position(user.id),
        )
        session.add(board)
        session.flush()
        return board.id

    board_id = run_in_scope_transaction(session, board_siblings(session), user.id, create)
    return board_out(session.get(Board, board_id))


@app.get("/v1/boards/{board_id}", response_model=BoardOut)
def get_board(
    board_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return board_out(get_owned_board(session, board_id, user))


@app.get("/v1/boards/{board_id}/full", response_model=BoardFull)
def get_board_full(
    board_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    board = get_owned_board(session, board_id, user)
    columns = [
        ColumnWithTasks(**column_out(c).model_dump(), tasks=[task_out(t) for t in c.tasks])
        for c in board.columns
    ]
    return BoardFull(**board_out(board).model_dump(), columns=columns)


@app.patch("/v1/boards/{board_id}", response_model=BoardOut)
def update_board(
    board_id: str,
    payload: BoardPatch,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    board = get_owned_board(session, board_id, user)
    if payload.name is not None:
        board.name = payload.name.strip()
    if "description" in payload.model_fields_set:
        board.description = strip_or_none(payload.description)
    session.commit()
    return board_out(board)


@app.delete("/v1/boards/{board_id}", status_code=204)
def delete_board(
    board_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    board = get_owned_board(session, board_id, user)
    session.delete(board)
    session.commit()
    return Response(status_code=204)


@app.patch("/v1/boards/{board_id}/reorder", response_model=BoardOut)
def reorder_board(
    board_id: str,
    payload: ReorderIn,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    get_owned_board(session, board_id, user)
    run_in_scope_transaction(
        session,
        board_siblings(session),
        user.id,
        lambda resolver: resolver.reorder(board_id, user.id, payload.beforeId, payload.afterId),
    )
    return board_out(session.get(Board, board_id))


# === Column endpoints ===


@app.get("/v1/columns", response_model=list[ColumnOut])
def list_columns(
    board_id: str = Query(..., alias="boardId"),
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    require_board_access(session, board_id, user)
    columns = session.scalars(
        select(ColumnModel).where(ColumnModel.board_id == board_id).order_by(ColumnModel.position, ColumnModel.id)
    )
    return [column_out(c) for c in columns]


@app.post("/v1/columns", response_model=ColumnOut, status_code=201)
def create_column(
    payload: ColumnIn,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    require_board_access(session, payload.boardId, user)

    def create(resolver) -> str:
        column = ColumnModel(
            board_id=payload.boardId,
            title=payload.title.strip(),
            position=resolver.compute_append_position(payload.boardId),
        )
        session.add(column)
        session.flush()
        return column.id

    column_id = run_in_scope_transaction(session, column_siblings(session), payload.boardId, create)
    return column_out(session.get(ColumnModel, column_id))


@app.patch("/v1/columns/{column_id}", response_model=ColumnOut)
def update_column(
    column_id: str,
    payload: ColumnPatch,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    column = require_column_access(session, column_id, user)
    if payload.boardId is None or payload.boardId == column.board_id:
        if payload.title is not None:
            column.title = payload.title.strip()
        session.commit()
        return column_out(column)

    destination = payload.boardId
    require_board_access(session, destination, user)

    def move(resolver) -> None:
        if payload.title is not None:
            column.title = payload.title.strip()
        column.position = resolver.compute_append_position(destination, exclude_id=column.id)
        column.board_id = destination
        session.flush()

    run_in_scope_transaction(session, column_siblings(session), destination, move)
    return column_out(session.get(ColumnModel, column_id))


@app.delete("/v1/columns/{column_id}", status_code=204)
def delete_column(
    column_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    column = require_column_access(session, column_id, user)
    session.delete(column)
    session.commit()
    return Response(status_code=204)


@app.patch("/v1/columns/{column_id}/reorder", response_model=ColumnOut)
def reorder_column(
    column_id: str,
    payload: ColumnReorder,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    require_column_access(session, column_id, user)
    require_board_access(session, payload.boardId, user, "Destination board not found.")
    run_in_scope_transaction(
        session,
        column_siblings(session),
        payload.boardId,
        lambda resolver: resolver.reorder(column_id, payload.boardId, payload.beforeId, payload.afterId),
    )
    return column_out(session.get(ColumnModel, column_id))


# === Task endpoints ===


@app.get("/v1/tasks", response_model=list[TaskOut])
def list_tasks(
    column_id: str = Query(..., alias="columnId"),
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    require_column_access(session, column_id, user)
    tasks = session.scalars(
        select(Task).where(Task.column_id == column_id).order_by(Task.position, Task.id)
    )
    return [task_out(t) for t in tasks]


@app.post("/v1/tasks", response_model=TaskOut, status_code=201)
def create_task(
    payload: TaskIn,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    require_column_access(session, payload.columnId, user)

    def create(resolver) -> str:
        task = Task(
            column_id=payload.columnId,
            title=payload.title.strip(),
            description=strip_or_none(payload.description),
            assignee_name=strip_or_none(payload.assigneeName),
            priority=payload.priority,
            position=resolver.compute_append_position(payload.columnId),
        )
        session.add(task)
        session.flush()
        return task.id

    task_id = run_in_scope_transaction(session, task_siblings(session), payload.columnId, create)
    return task_out(session.get(Task, task_id))


@app.patch("/v1/tasks/{task_id}", response_model=TaskOut)
def update_task(
    task_id: str,
    payload: TaskPatch,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    task = require_task_access(session, task_id, user)

    def apply_fields() -> None:
        if payload.title is not None:
            task.title = payload.title.strip()
        if "description" in payload.model_fields_set:
            task.description = strip_or_none(payload.description)
        if "assigneeName" in payload.model_fields_set:
            task.assignee_name = strip_or_none(payload.assigneeName)
        if payload.priority is not None:
            task.priority = payload.priority

    if payload.columnId is None or payload.columnId == task.column_id:
        apply_fields()
        session.commit()
        return task_out(task)

    destination = payload.columnId
    require_column_access(session, destination, user)

    def move(resolver) -> None:
        apply_fields()
        task.position = resolver.compute_append_position(destination, exclude_id=task.id)
        task.column_id = destination
        session.flush()

    run_in_scope_transaction(session, task_siblings(session), destination, move)
    return task_out(session.get(Task, task_id))


@app.delete("/v1/tasks/{task_id}", status_code=204)
def delete_task(
    task_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    task = require_task_access(session, task_id, user)
    session.delete(task)
    session.commit()
    return Response(status_code=204)


@app.patch("/v1/tasks/{task_id}/reorder", response_model=TaskOut)
def reorder_task(
    task_id: str,
    payload: TaskReorder,
    user: AuthenticatedUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    require_task_access(session, task_id, user)
    require_column_access(session, payload.columnId, user, "Destination column not found.")
    run_in_scope_transaction(
        session,
        task_siblings(session),
        payload.columnId,
        lambda resolver: resolver.reorder(task_id, payload.columnId, payload.beforeId, payload.afterId),
    )
    return task_out(session.get(Task, task_id))


# === Admin endpoints ===


@app.get("/v1/admin/stats", response_model=AdminStats)
def admin_stats(
    _admin: AuthenticatedUser = Depends(require_role("admin")),
    session: Session = Depends(get_session),
):
    totals = Totals(
        users=session.scalar(select(func.count()).select_from(User)),
        boards=session.scalar(select(func.count()).select_from(Board)),
        columns=session.scalar(select(func.count()).select_from(ColumnModel)),
        tasks=session.scalar(select(func.count()).select_from(Task)),
    )
    breakdown = session.execute(
        select(Task.priority, func.count(Task.id)).group_by(Task.priority).order_by(Task.priority)
    )
    board_count = func.count(Board.id).label("board_count")
    top_users = session.execute(
        select(User.id, User.email, User.role, board_count)
        .outerjoin(Board, Board.owner_user_id == User.id)
        .group_by(User.id, User.email, User.role, User.created_at)
        .order_by(board_count.desc(), User.created_at.asc())
        .limit(10)
    )
    return AdminStats(
        totals=totals,
        taskPriorityBreakdown=[PriorityCount(priority=p, count=c) for p, c in breakdown],
        topUsersByBoardCount=[
            UserBoardCount(userId=uid, email=email, role=role, boardCount=count)
            for uid, email, role, count in top_users
        ],
    )
