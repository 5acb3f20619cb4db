from contextlib import asynccontextmanager
from pathlib import Path
import logging
import sys
import time

from fastapi import FastAPI, Depends, Form, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.middleware.base import BaseHTTPMiddleware

from . import config
from .auth import SECRET_KEY, INSECURE_SECRET_KEY, create_csrf_token, require_csrf
from .db import init_db
from .lists import (
    ListManager,
    NotFoundError,
    ValidationError,
    list_class,
    lists_in_order,
    todos_completed_count,
    todos_count,
    todos_in_order,
    todos_remaining_count,
)
from .models import SessionData
from .sessions import SqlSessionStore, build_session_store, new_session_token

logger = logging.getLogger(__name__)
# Ensure INFO-level messages from this package appear on the server console
# when no handlers are configured (safe fallback for development/testing).
_pkg_logger = logging.getLogger('fast_lists')
if not _pkg_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s')
    handler.setFormatter(formatter)
    _pkg_logger.addHandler(handler)
_pkg_logger.setLevel(logging.INFO)

TEMPLATES = Jinja2Templates(directory=str(Path(__file__).resolve().parent / 'templates'))
TEMPLATES.env.auto_reload = config.DEV_MODE
TEMPLATES.env.globals['config'] = config
TEMPLATES.env.globals['list_class'] = list_class
TEMPLATES.env.globals['lists_in_order'] = lists_in_order
TEMPLATES.env.globals['todos_in_order'] = todos_in_order
TEMPLATES.env.globals['todos_count'] = todos_count
TEMPLATES.env.globals['todos_completed_count'] = todos_completed_count
TEMPLATES.env.globals['todos_remaining_count'] = todos_remaining_count


@asynccontextmanager
async def lifespan(app: FastAPI):
    # If SECRET_KEY is missing or still the test fallback, fail fast. CSRF
    # tokens signed with a known key protect nothing.
    if not SECRET_KEY or SECRET_KEY == INSECURE_SECRET_KEY:
        raise RuntimeError("SECRET_KEY not set or insecure fallback in use; set the SECRET_KEY environment variable before starting the server")
    store = app.state.session_store
    if isinstance(store, SqlSessionStore):
        await init_db()
    purged = await store.purge_expired()
    logger.info('starting server with %s (purged %d expired sessions)', type(store).__name__, purged)
    yield
    logger.info('server stopping')


app = FastAPI(lifespan=lifespan)
# Injected rather than imported by handlers; tests swap in a fresh store.
app.state.session_store = build_session_store()


class _SessionMiddleware(BaseHTTPMiddleware):
    """Load the caller's session before the handler runs and save it after.

    A request without a cookie, or with a cookie the store no longer knows
    (expired or purged), starts a new empty session and gets a fresh cookie.
    """

    async def dispatch(self, request, call_next):
        store = request.app.state.session_store
        token = request.cookies.get(config.SESSION_COOKIE_NAME)
        data = await store.load(token) if token else None
        is_new = data is None
        if is_new:
            token = new_session_token()
            data = SessionData()
            logger.info('starting new session for %s %s', request.method, request.url.path)
        request.state.session_token = token
        request.state.session = data
        response = await call_next(request)
        await store.save(token, data)
        if is_new:
            response.set_cookie(
                config.SESSION_COOKIE_NAME,
                token,
                max_age=config.SESSION_EXPIRE_MINUTES * 60,
                httponly=True,
                samesite='lax',
                secure=config.COOKIE_SECURE,
            )
        return response


app.add_middleware(_SessionMiddleware)


@app.middleware("http")
async def no_cache_dynamic(request: Request, call_next):
    """Set conservative no-cache headers on HTML responses.

    Pages reflect per-session state and carry one-shot flash messages, so
    browsers must not serve them from cache on back/forward navigation.
    """
    resp = await call_next(request)
    content_type = resp.headers.get('content-type', '')
    if 'text/html' in content_type or request.url.path.startswith('/lists'):
        cc = resp.headers.get('Cache-Control', '')
        if 'no-store' not in cc.lower():
            resp.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate'
        resp.headers['Pragma'] = 'no-cache'
        resp.headers['Expires'] = '0'
    return resp


@app.middleware('http')
async def timing_middleware(request: Request, call_next):
    start = time.perf_counter()
    resp = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000.0
    logger.info('timing %s %s %s %.1fms', request.method, request.url.path, request.url.query, duration_ms)
    return resp


def get_session_data(request: Request) -> SessionData:
    return request.state.session


def get_list_manager(data: SessionData = Depends(get_session_data)) -> ListManager:
    return ListManager(data)


def _is_xhr(request: Request) -> bool:
    return request.headers.get('X-Requested-With') == 'XMLHttpRequest'


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def _render(request: Request, template: str, context: dict | None = None, status_code: int = 200):
    """Render a page, consuming any pending flash messages."""
    data: SessionData = request.state.session
    error, success = data.pop_flash()
    ctx = {
        'error': error,
        'success': success,
        'lists': data.lists,
        'csrf_token': create_csrf_token(request.state.session_token),
    }
    if context:
        ctx.update(context)
    return TEMPLATES.TemplateResponse(request, template, ctx, status_code=status_code)


@app.exception_handler(NotFoundError)
async def _not_found_handler(request: Request, exc: NotFoundError):
    request.state.session.error = str(exc)
    logger.info('not found: list_id=%s todo_id=%s', exc.list_id, exc.todo_id)
    if exc.todo_id is not None:
        return _redirect(f'/lists/{exc.list_id}')
    return _redirect('/lists')


@app.get("/")
async def root_redirect():
    return RedirectResponse(url='/lists', status_code=302)


# View list of lists
@app.get('/lists', response_class=HTMLResponse)
async def view_lists(request: Request):
    return _render(request, 'lists.html')


# Render the new list form
@app.get('/lists/new', response_class=HTMLResponse)
async def new_list_form(request: Request):
    return _render(request, 'new_list.html', {'list_name': ''})


# View a single list
@app.get('/lists/{list_id}', response_class=HTMLResponse)
async def view_list(request: Request, list_id: int, manager: ListManager = Depends(get_list_manager)):
    current_list = manager.get_list(list_id)
    return _render(request, 'list.html', {'current_list': current_list, 'todo_name': ''})


# Render the edit list form
@app.get('/lists/{list_id}/edit', response_class=HTMLResponse)
async def edit_list_form(request: Request, list_id: int, manager: ListManager = Depends(get_list_manager)):
    current_list = manager.get_list(list_id)
    return _render(request, 'edit_list.html', {'current_list': current_list, 'list_name': current_list.name})


# Create a new list
@app.post('/lists', dependencies=[Depends(require_csrf)])
async def create_list(
    request: Request,
    list_name: str = Form(''),
    manager: ListManager = Depends(get_list_manager),
):
    try:
        manager.create_list(list_name)
    except ValidationError as e:
        manager.data.error = str(e)
        return _render(request, 'new_list.html', {'list_name': list_name.strip()}, status_code=422)
    manager.data.success = 'The list has been created.'
    return _redirect('/lists')


# Rename a list
@app.post('/lists/{list_id}', dependencies=[Depends(require_csrf)])
async def rename_list(
    request: Request,
    list_id: int,
    list_name: str = Form(''),
    manager: ListManager = Depends(get_list_manager),
):
    try:
        manager.rename_list(list_id, list_name)
    except ValidationError as e:
        manager.data.error = str(e)
        current_list = manager.get_list(list_id)
        return _render(request, 'edit_list.html', {'current_list': current_list, 'list_name': list_name.strip()}, status_code=422)
    manager.data.success = 'The list has been updated.'
    return _redirect(f'/lists/{list_id}')


# Delete a list
@app.post('/lists/{list_id}/destroy', dependencies=[Depends(require_csrf)])
async def destroy_list(request: Request, list_id: int, manager: ListManager = Depends(get_list_manager)):
    manager.delete_list(list_id)
    if _is_xhr(request):
        # scripted callers navigate to the returned location themselves
        return PlainTextResponse('/lists')
    manager.data.success = 'The list has been deleted.'
    return _redirect('/lists')


# Add a todo to a list
@app.post('/lists/{list_id}/todos', dependencies=[Depends(require_csrf)])
async def add_todo(
    request: Request,
    list_id: int,
    todo: str = Form(''),
    manager: ListManager = Depends(get_list_manager),
):
    try:
        manager.add_todo(list_id, todo)
    except ValidationError as e:
        manager.data.error = str(e)
        current_list = manager.get_list(list_id)
        return _render(request, 'list.html', {'current_list': current_list, 'todo_name': todo.strip()}, status_code=422)
    manager.data.success = 'The todo was added.'
    return _redirect(f'/lists/{list_id}')


# Delete a todo from a list
@app.post('/lists/{list_id}/todos/{todo_id}/destroy', dependencies=[Depends(require_csrf)])
async def destroy_todo(request: Request, list_id: int, todo_id: int, manager: ListManager = Depends(get_list_manager)):
    if _is_xhr(request):
        # scripted callers only remove the row; a missing todo is already gone
        try:
            manager.delete_todo(list_id, todo_id)
        except NotFoundError:
            logger.info('xhr delete of missing todo list_id=%s todo_id=%s', list_id, todo_id)
        return Response(status_code=204)
    manager.delete_todo(list_id, todo_id)
    manager.data.success = 'The todo has been deleted.'
    return _redirect(f'/lists/{list_id}')


# Mark a todo as complete/incomplete
@app.post('/lists/{list_id}/todos/{todo_id}', dependencies=[Depends(require_csrf)])
async def update_todo(
    list_id: int,
    todo_id: int,
    completed: str = Form('false'),
    manager: ListManager = Depends(get_list_manager),
):
    manager.set_todo_completed(list_id, todo_id, completed == 'true')
    manager.data.success = 'The todo has been updated.'
    return _redirect(f'/lists/{list_id}')


# Complete all todos in a list
@app.post('/lists/{list_id}/complete_all', dependencies=[Depends(require_csrf)])
async def complete_all_todos(list_id: int, manager: ListManager = Depends(get_list_manager)):
    manager.complete_all(list_id)
    manager.data.success = 'All todos have been completed.'
    return _redirect(f'/lists/{list_id}')
