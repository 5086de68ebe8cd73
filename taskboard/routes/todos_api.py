import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .. import schemas
from ..auth import Authenticated
from ..cache import revalidate_todo_views
from ..config import settings
from ..dependencies import RequestContext, get_context
from ..models import Todo
from ..repositories import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/todos", tags=["todos"])


def _message(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"message": message}, status_code=status_code)


def _parse_count(raw: Optional[str], default: int) -> Optional[int]:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value >= 0 else None


async def _read_json(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


def _validation_error(exc: ValidationError) -> JSONResponse:
    errors = [error.model_dump() for error in schemas.format_errors(exc)]
    return JSONResponse({"errors": errors}, status_code=status.HTTP_400_BAD_REQUEST)


def _serialize(todo: Todo) -> dict:
    return schemas.TodoOut.model_validate(todo).model_dump(mode="json")


def _find_owned(ctx: RequestContext, todo_id: str) -> Optional[Todo]:
    if not isinstance(ctx.session, Authenticated) or not ctx.session.is_resolved:
        return None
    return ctx.todos.get_for_user(todo_id, ctx.session.id)


@router.get("", response_model=List[schemas.TodoOut])
def list_todos(
    take: Optional[str] = None,
    skip: Optional[str] = None,
    ctx: RequestContext = Depends(get_context),
):
    take_value = _parse_count(take, settings.default_page_size)
    if take_value is None:
        return _message("take must be a non-negative integer", status.HTTP_400_BAD_REQUEST)
    skip_value = _parse_count(skip, 0)
    if skip_value is None:
        return _message("skip must be a non-negative integer", status.HTTP_400_BAD_REQUEST)

    return ctx.todos.list(take=take_value, skip=skip_value)


@router.post("")
async def create_todo(request: Request, ctx: RequestContext = Depends(get_context)):
    payload = await _read_json(request)
    if not isinstance(payload, dict):
        return _message("Request body must be a JSON object", status.HTTP_400_BAD_REQUEST)
    try:
        todo_in = schemas.TodoCreate(**payload)
    except ValidationError as exc:
        return _validation_error(exc)

    owner_id = None
    if isinstance(ctx.session, Authenticated) and ctx.session.is_resolved:
        owner_id = ctx.session.id

    try:
        todo = ctx.todos.create(
            description=todo_in.description, complete=todo_in.complete, user_id=owner_id
        )
    except StorageError:
        logger.exception("Could not create todo")
        return _message("Internal server error during todo creation.", 500)

    revalidate_todo_views(ctx.views)
    return JSONResponse(_serialize(todo))


@router.get("/{todo_id}")
def get_todo(todo_id: str, ctx: RequestContext = Depends(get_context)):
    todo = _find_owned(ctx, todo_id)
    if todo is None:
        return _message(f"Todo with id {todo_id} does not exist", status.HTTP_404_NOT_FOUND)
    return JSONResponse(_serialize(todo))


@router.put("/{todo_id}")
async def update_todo(
    todo_id: str, request: Request, ctx: RequestContext = Depends(get_context)
):
    todo = _find_owned(ctx, todo_id)
    if todo is None:
        return _message(f"Todo with id {todo_id} does not exist", status.HTTP_404_NOT_FOUND)

    payload = await _read_json(request)
    if not isinstance(payload, dict):
        return _message("Request body must be a JSON object", status.HTTP_400_BAD_REQUEST)
    try:
        todo_in = schemas.TodoUpdate(**payload)
    except ValidationError as exc:
        return _validation_error(exc)
    changes = {
        key: value
        for key, value in todo_in.model_dump(exclude_unset=True).items()
        if value is not None
    }

    try:
        todo = ctx.todos.update(todo, **changes)
    except StorageError:
        logger.exception("Could not update todo %s", todo_id)
        return _message("Internal server error during todo update.", 500)

    revalidate_todo_views(ctx.views)
    return JSONResponse(_serialize(todo))


@router.delete("/{todo_id}")
def delete_todo(todo_id: str, ctx: RequestContext = Depends(get_context)):
    todo = _find_owned(ctx, todo_id)
    if todo is None:
        return _message(f"Todo with id {todo_id} does not exist", status.HTTP_404_NOT_FOUND)

    try:
        ctx.todos.delete(todo)
    except StorageError:
        logger.exception("Could not delete todo %s", todo_id)
        return _message("Internal server error during todo deletion.", 500)

    revalidate_todo_views(ctx.views)
    return {"message": "Todo deleted"}
