"""Client-side optimistic state for a single todo row.

A row is either confirmed (showing the server's value) or pending (showing a
locally flipped value while the toggle request is in flight). There is no
sequencing: overlapping toggles race and the last server write wins.

This is a client-side helper for Python callers of the toggle endpoints; the
server never imports it. The browser counterpart is static/js/todos.js.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

ToggleAction = Callable[[str, bool], Awaitable[Any]]


@dataclass
class OptimisticTodo:
    todo_id: str
    confirmed: bool
    optimistic: Optional[bool] = None

    @property
    def pending(self) -> bool:
        return self.optimistic is not None

    @property
    def complete(self) -> bool:
        """The value the row currently displays."""
        return self.optimistic if self.pending else self.confirmed

    def flip(self) -> bool:
        self.optimistic = not self.complete
        return self.optimistic

    def revert(self) -> None:
        if self.optimistic is None:
            return
        self.optimistic = not self.optimistic
        if self.optimistic == self.confirmed:
            self.optimistic = None

    def reconcile(self, complete: bool) -> None:
        self.confirmed = complete
        self.optimistic = None

    async def toggle(self, action: ToggleAction) -> Any:
        """Flip locally, then persist through ``action``.

        On failure the optimistic value is flipped back and None is returned.
        """
        requested = self.flip()
        try:
            return await action(self.todo_id, requested)
        except Exception:
            logger.warning("Toggle of todo %s failed; reverting", self.todo_id, exc_info=True)
            self.revert()
            return None


class OptimisticTodoList:
    def __init__(self, todos: Iterable[Any]) -> None:
        self.rows = {
            todo.id: OptimisticTodo(todo_id=todo.id, confirmed=todo.complete)
            for todo in todos
        }

    def __getitem__(self, todo_id: str) -> OptimisticTodo:
        return self.rows[todo_id]

    def reconcile(self, todos: Iterable[Any]) -> None:
        """Apply a fresh server listing; rows missing from it are dropped."""
        fresh = {}
        for todo in todos:
            row = self.rows.get(todo.id) or OptimisticTodo(todo.id, todo.complete)
            row.reconcile(todo.complete)
            fresh[todo.id] = row
        self.rows = fresh
