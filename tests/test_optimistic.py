import asyncio
from types import SimpleNamespace

from taskboard.optimistic import OptimisticTodo, OptimisticTodoList


def test_flip_shows_the_requested_value_while_pending():
    row = OptimisticTodo(todo_id="t1", confirmed=False)

    assert row.flip() is True
    assert row.pending
    assert row.complete is True

    row.reconcile(True)
    assert not row.pending
    assert row.complete is True


def test_successful_toggle_sends_the_flipped_value():
    row = OptimisticTodo(todo_id="t1", confirmed=False)
    calls = []

    async def action(todo_id, complete):
        calls.append((todo_id, complete))
        return {"id": todo_id, "complete": complete}

    result = asyncio.run(row.toggle(action))

    assert calls == [("t1", True)]
    assert result == {"id": "t1", "complete": True}
    assert row.complete is True


def test_failed_toggle_reverts_to_confirmed_value():
    row = OptimisticTodo(todo_id="t1", confirmed=True)

    async def action(todo_id, complete):
        raise LookupError(f"Todo with id {todo_id} does not exist")

    assert asyncio.run(row.toggle(action)) is None
    assert row.complete is True
    assert not row.pending


def test_revert_after_overlapping_flips():
    row = OptimisticTodo(todo_id="t1", confirmed=False)
    row.flip()
    row.flip()

    row.revert()

    assert row.complete is True
    assert row.pending


def test_list_reconcile_replaces_rows():
    listing = OptimisticTodoList(
        [SimpleNamespace(id="a", complete=False), SimpleNamespace(id="b", complete=True)]
    )
    listing["a"].flip()

    listing.reconcile([SimpleNamespace(id="a", complete=True)])

    assert set(listing.rows) == {"a"}
    assert listing["a"].complete is True
    assert not listing["a"].pending
