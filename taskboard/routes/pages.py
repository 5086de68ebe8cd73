from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from .. import schemas
from ..actions import ActionError, TodoNotFoundError, add_todo, delete_completed, toggle_todo
from ..auth import Authenticated
from ..dependencies import (
    RequestContext,
    get_context,
    get_page_context,
    require_page_session,
    require_session,
)
from ..templating import render_to_string, templates

router = APIRouter(tags=["pages"])

SERVER_TODOS_PATH = "/dashboard/server-todos"
TODOS_PATH = "/dashboard/todos"
TAB_COOKIE = "selectedTab"
TAB_OPTIONS = [1, 2, 3, 4]


def _page(request: Request, template: str, ctx: RequestContext, context: dict) -> HTMLResponse:
    base_context = {"current_user": ctx.session, "active_path": request.url.path}
    base_context.update(context)
    return templates.TemplateResponse(request, template, base_context)


def _owner_id(session) -> Optional[str]:
    if isinstance(session, Authenticated) and session.is_resolved:
        return session.id
    return None


@router.get("/")
def landing() -> RedirectResponse:
    return RedirectResponse(url="/dashboard", status_code=status.HTTP_303_SEE_OTHER)


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request, ctx: RequestContext = Depends(get_page_context)):
    return _page(request, "dashboard/index.html", ctx, {"page_title": "Dashboard"})


@router.get("/dashboard/profile", response_class=HTMLResponse)
def profile(request: Request, ctx: RequestContext = Depends(get_page_context)):
    return _page(request, "dashboard/profile.html", ctx, {"page_title": "Profile"})


@router.get(TODOS_PATH, response_class=HTMLResponse)
def todos_page(ctx: RequestContext = Depends(get_page_context)):
    """Todos of the signed-in user, mutated through the REST API.

    A session whose user can no longer be resolved owns nothing, so it gets
    an empty, uncached listing.
    """
    owner_id = _owner_id(ctx.session)

    def render() -> str:
        return render_to_string(
            "dashboard/todos.html",
            {
                "current_user": ctx.session,
                "active_path": TODOS_PATH,
                "todos": ctx.todos.list_ordered(owner_id) if owner_id else [],
                "page_title": "Todos",
            },
        )

    if owner_id is None:
        return HTMLResponse(render())
    return HTMLResponse(ctx.views.render(TODOS_PATH, owner_id, render))


@router.get(SERVER_TODOS_PATH, response_class=HTMLResponse)
def server_todos_page(
    error: Optional[str] = None, ctx: RequestContext = Depends(get_page_context)
):
    """All todos, mutated through server actions."""

    def render() -> str:
        return render_to_string(
            "dashboard/server_todos.html",
            {
                "current_user": ctx.session,
                "active_path": SERVER_TODOS_PATH,
                "todos": ctx.todos.list_ordered(),
                "error": error,
                "page_title": "Server actions",
            },
        )

    owner_id = _owner_id(ctx.session)
    if error or owner_id is None:
        return HTMLResponse(render())
    return HTMLResponse(ctx.views.render(SERVER_TODOS_PATH, owner_id, render))


def _back_to_server_todos(result) -> RedirectResponse:
    url = SERVER_TODOS_PATH
    if isinstance(result, ActionError):
        url = f"{SERVER_TODOS_PATH}?{urlencode({'error': result.message})}"
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


@router.post(f"{SERVER_TODOS_PATH}/new")
async def create_todo_action(request: Request, ctx: RequestContext = Depends(get_page_context)):
    form = await request.form()
    result = add_todo(ctx.todos, ctx.views, form.get("description") or "", _owner_id(ctx.session))
    return _back_to_server_todos(result)


@router.post(f"{SERVER_TODOS_PATH}/{{todo_id}}/toggle")
def toggle_todo_action(
    todo_id: str,
    payload: schemas.TodoToggle,
    ctx: RequestContext = Depends(get_context),
    _: Authenticated = Depends(require_session),
):
    try:
        todo = toggle_todo(ctx.todos, ctx.views, todo_id, payload.complete)
    except TodoNotFoundError as exc:
        return JSONResponse({"message": str(exc)}, status_code=status.HTTP_404_NOT_FOUND)
    return JSONResponse(schemas.TodoOut.model_validate(todo).model_dump(mode="json"))


@router.post(f"{SERVER_TODOS_PATH}/delete-completed")
def delete_completed_action(ctx: RequestContext = Depends(get_page_context)):
    return _back_to_server_todos(delete_completed(ctx.todos, ctx.views))


@router.get("/dashboard/cookies", response_class=HTMLResponse)
def cookies_page(request: Request, ctx: RequestContext = Depends(get_page_context)):
    try:
        current_tab = int(request.cookies.get(TAB_COOKIE, "1"))
    except ValueError:
        current_tab = 1
    return _page(
        request,
        "dashboard/cookies.html",
        ctx,
        {"current_tab": current_tab, "tab_options": TAB_OPTIONS, "page_title": "Cookies"},
    )


@router.post("/dashboard/cookies/tab")
async def select_tab(request: Request, _: Authenticated = Depends(require_page_session)):
    form = await request.form()
    tab = form.get("tab") or "1"
    response = RedirectResponse(url="/dashboard/cookies", status_code=status.HTTP_303_SEE_OTHER)
    if tab.isdigit() and int(tab) in TAB_OPTIONS:
        response.set_cookie(TAB_COOKIE, tab, samesite="lax")
    return response
