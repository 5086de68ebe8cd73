from pathlib import Path

from fastapi.templating import Jinja2Templates

from .config import settings

MENU_ITEMS = [
    {"path": "/dashboard", "title": "Dashboard"},
    {"path": "/dashboard/todos", "title": "Todos"},
    {"path": "/dashboard/server-todos", "title": "Server actions"},
    {"path": "/dashboard/cookies", "title": "Cookies"},
    {"path": "/dashboard/products", "title": "Products"},
    {"path": "/dashboard/cart", "title": "Cart"},
    {"path": "/dashboard/profile", "title": "Profile"},
]

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))
templates.env.globals["app_name"] = settings.app_name
templates.env.globals["menu_items"] = MENU_ITEMS


def render_to_string(template: str, context: dict) -> str:
    return templates.get_template(template).render(**context)
