from taskboard.cache import TODO_LIST_PATHS, ViewCache, revalidate_todo_views


def test_render_is_cached_until_revalidated():
    cache = ViewCache()
    calls = []

    def render():
        calls.append(1)
        return f"<listing {len(calls)}>"

    assert cache.render("/dashboard/todos", "u1", render) == "<listing 1>"
    assert cache.render("/dashboard/todos", "u1", render) == "<listing 1>"

    assert cache.revalidate_path("/dashboard/todos") == 1
    assert cache.render("/dashboard/todos", "u1", render) == "<listing 2>"


def test_render_overlapping_a_revalidation_is_not_stored():
    cache = ViewCache()

    def render_during_mutation():
        revalidate_todo_views(cache)
        return "<stale listing>"

    assert cache.render("/dashboard/todos", "u1", render_during_mutation) == "<stale listing>"
    assert not cache.is_cached("/dashboard/todos", "u1")
    assert cache.render("/dashboard/todos", "u1", lambda: "<fresh listing>") == "<fresh listing>"


def test_revalidation_only_touches_its_path():
    cache = ViewCache()
    for path in TODO_LIST_PATHS:
        cache.render(path, "u1", lambda: "<cached>")

    cache.revalidate_path("/dashboard/todos")

    assert not cache.is_cached("/dashboard/todos", "u1")
    assert cache.is_cached("/dashboard/server-todos", "u1")
