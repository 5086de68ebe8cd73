from pathlib import Path
from urllib.parse import urlencode
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from . import models
from .auth import hash_password
from .config import settings
from .database import Base, SessionLocal, engine
from .dependencies import LoginRequired
from .logging_setup import setup_logging
from .repositories import DEFAULT_ROLES, ensure_roles
from .routes import auth as auth_routes
from .routes import cart as cart_routes
from .routes import pages as pages_routes
from .routes import todos_api as todos_api_routes
from .templating import templates

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    session_cookie=settings.session_cookie,
    max_age=settings.session_max_age_seconds,
    same_site="lax",
)

static_dir = Path(__file__).resolve().parent / "static"
app.mount("/static", StaticFiles(directory=static_dir), name="static")


def _seed_defaults(db: Session) -> None:
    existing_roles = {role.name for role in db.scalars(select(models.Role)).all()}
    for name, description in DEFAULT_ROLES.items():
        if name not in existing_roles:
            db.add(models.Role(name=name, description=description))
    db.flush()

    admin = db.scalar(
        select(models.User).where(models.User.email == settings.default_admin_email)
    )
    if not admin:
        admin = models.User(
            email=settings.default_admin_email,
            name=settings.default_admin_name,
            password_hash=hash_password(settings.default_admin_password),
        )
        db.add(admin)
        db.flush()
    ensure_roles(db, admin, ["admin", "user"])


@app.on_event("startup")
def on_startup() -> None:
    setup_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        _seed_defaults(db)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


def _wants_html(request: Request) -> bool:
    if request.url.path.startswith("/api/"):
        return False
    accept = request.headers.get("accept", "")
    return "text/html" in accept or "*/*" in accept


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    query = urlencode({"callbackUrl": exc.next_path})
    return RedirectResponse(
        url=f"/api/auth/signin?{query}", status_code=status.HTTP_303_SEE_OTHER
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if _wants_html(request):
        template_name = "errors/404.html" if exc.status_code == 404 else "errors/generic.html"
        return templates.TemplateResponse(
            request,
            template_name,
            {"detail": exc.detail, "status_code": exc.status_code},
            status_code=exc.status_code,
        )
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled application error", exc_info=exc)
    if _wants_html(request):
        return templates.TemplateResponse(
            request,
            "errors/generic.html",
            {"detail": "Internal server error", "status_code": 500},
            status_code=500,
        )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


app.include_router(auth_routes.router)
app.include_router(todos_api_routes.router)
app.include_router(pages_routes.router)
app.include_router(cart_routes.router)
