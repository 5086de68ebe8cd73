"""Server-side todo mutations used by the server-todos dashboard."""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Union

from .cache import ViewCache, revalidate_todo_views
from .config import settings
from .models import Todo
from .repositories import StorageError, TodoRepository

logger = logging.getLogger(__name__)


@dataclass
class ActionError:
    message: str


class TodoNotFoundError(LookupError):
    def __init__(self, todo_id: str):
        super().__init__(f"Todo with id {todo_id} does not exist")
        self.todo_id = todo_id


def add_todo(
    todos: TodoRepository,
    views: ViewCache,
    description: str,
    user_id: Optional[str],
) -> Union[Todo, ActionError]:
    description = (description or "").strip()
    if not description or not user_id:
        return ActionError(message="A description and an owner are required")

    try:
        todo = todos.create(description=description, complete=False, user_id=user_id)
    except StorageError:
        logger.exception("Could not create todo for user %s", user_id)
        return ActionError(message="Error creating the todo")

    revalidate_todo_views(views)
    return todo


def toggle_todo(
    todos: TodoRepository,
    views: ViewCache,
    todo_id: str,
    complete: bool,
    delay_seconds: Optional[float] = None,
) -> Todo:
    """Persist the completion flag of a todo.

    Raises TodoNotFoundError when the id is unknown; the caller is expected to
    catch it and undo any optimistic state.
    """
    if delay_seconds is None:
        delay_seconds = settings.toggle_delay_seconds
    if delay_seconds > 0:
        # Artificial latency so optimistic updates are visible.
        time.sleep(delay_seconds)

    todo = todos.get(todo_id)
    if todo is None:
        raise TodoNotFoundError(todo_id)

    todo = todos.update(todo, complete=complete)
    revalidate_todo_views(views)
    return todo


def delete_completed(todos: TodoRepository, views: ViewCache) -> Optional[ActionError]:
    try:
        deleted = todos.delete_completed()
    except StorageError:
        logger.exception("Could not delete completed todos")
        return ActionError(message="Error deleting completed todos")

    logger.info("Deleted %d completed todos", deleted)
    revalidate_todo_views(views)
    return None
