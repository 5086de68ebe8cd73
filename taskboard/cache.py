import logging
import threading
from typing import Callable, Dict, Hashable, Tuple

logger = logging.getLogger(__name__)

TODO_LIST_PATHS = ("/dashboard/server-todos", "/dashboard/todos")


class ViewCache:
    """Rendered views keyed by path and a per-viewer variant.

    A cached view is served until its path is revalidated. Each path carries
    a generation number; a render that started before a revalidation of its
    path is returned to its caller but never stored.
    """

    def __init__(self) -> None:
        self._views: Dict[Tuple[str, Hashable], str] = {}
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()

    def render(self, path: str, variant: Hashable, render: Callable[[], str]) -> str:
        key = (path, variant)
        with self._lock:
            cached = self._views.get(key)
            generation = self._generations.get(path, 0)
        if cached is not None:
            return cached
        html = render()
        with self._lock:
            if self._generations.get(path, 0) == generation:
                self._views[key] = html
            else:
                logger.debug("Discarded render of %s started before revalidation", path)
        return html

    def is_cached(self, path: str, variant: Hashable) -> bool:
        with self._lock:
            return (path, variant) in self._views

    def revalidate_path(self, path: str) -> int:
        with self._lock:
            self._generations[path] = self._generations.get(path, 0) + 1
            stale = [key for key in self._views if key[0] == path]
            for key in stale:
                del self._views[key]
        logger.debug("Revalidated %s (%d cached views dropped)", path, len(stale))
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._views.clear()


views = ViewCache()


def revalidate_todo_views(cache: ViewCache) -> None:
    for path in TODO_LIST_PATHS:
        cache.revalidate_path(path)
