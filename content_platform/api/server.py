from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from content_platform import __version__
from content_platform.auth import bootstrap_admin_if_needed, resolve_and_require
from content_platform.auth.crud import (
    create_user,
    get_user,
    list_users,
    modify_user,
    touch_last_login,
    verify_user_credentials,
)
from content_platform.auth.security import create_access_token
from content_platform.config import Config, load_config
from content_platform.content import attachments, comments, metas, posts
from content_platform.db import Store, init_db, open_store
from content_platform.errors import ApiError, InvalidParams, PermissionDenied
from content_platform.models import Identity, Role
from content_platform.query import MAX_PAGE, MAX_PAGE_SIZE
from content_platform.storage import LocalStorage


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


_bearer = HTTPBearer(auto_error=False)


# -----------------------------
# Request plumbing
# -----------------------------


def _cfg(request: Request) -> Config:
    return request.app.state.cfg


def _storage(request: Request) -> LocalStorage:
    return request.app.state.storage


def _open(request: Request):
    cfg = _cfg(request)
    return open_store(cfg.DB_DSN, users_table=cfg.USERS_TABLE)


def _raw_token(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """The routing layer only extracts the credential; it never interprets it."""
    if credentials is None:
        return None
    return credentials.credentials or None


def _actor(
    request: Request,
    store: Store,
    credentials: Optional[HTTPAuthorizationCredentials],
    minimum: Role,
) -> Identity:
    return resolve_and_require(store, _raw_token(credentials), minimum, secret=_cfg(request).AUTH_JWT_SECRET)


def _optional_actor(
    request: Request,
    store: Store,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[Identity]:
    """Anonymous callers get None; a credential that is sent must still be valid."""
    if _raw_token(credentials) is None:
        return None
    return _actor(request, store, credentials, Role.SUBSCRIBER)


# -----------------------------
# Request bodies
# -----------------------------


class LoginRequest(BaseModel):
    account: str  # name or mail
    password: str


class RegisterRequest(BaseModel):
    name: str
    mail: str
    password: str
    url: Optional[str] = None


class ModifyUserRequest(BaseModel):
    name: str
    mail: str
    url: Optional[str] = None
    screenName: Optional[str] = None
    group: str
    password: Optional[str] = None


class CreatePostRequest(BaseModel):
    title: str
    slug: str
    text: str
    created: Optional[int] = None
    template: Optional[str] = None
    status: str = "publish"
    password: Optional[str] = None
    allowComment: str = "1"
    allowPing: str = "1"
    allowFeed: str = "1"


class ModifyPostRequest(BaseModel):
    title: Optional[str] = None
    slug: Optional[str] = None
    text: Optional[str] = None
    created: Optional[int] = None
    template: Optional[str] = None
    status: Optional[str] = None
    password: Optional[str] = None
    allowComment: Optional[str] = None
    allowPing: Optional[str] = None
    allowFeed: Optional[str] = None


class LinkMetaRequest(BaseModel):
    mid: int


class CreateMetaRequest(BaseModel):
    name: str
    slug: str
    type: str
    description: Optional[str] = None
    parent: int = 0


class AttachRequest(BaseModel):
    cid: int


class CreateCommentRequest(BaseModel):
    text: str
    parent: int = 0


# -----------------------------
# Read routes (always mounted)
# -----------------------------

read = APIRouter(prefix="/api")


@read.post("/users/token")
def login(payload: LoginRequest, request: Request) -> Dict[str, Any]:
    cfg = _cfg(request)
    with _open(request) as store:
        row = verify_user_credentials(store, payload.account, payload.password)
        if not cfg.READ_ONLY:
            touch_last_login(store, int(row["uid"]))
        token = create_access_token(
            secret=cfg.AUTH_JWT_SECRET,
            user_id=int(row["uid"]),
            expires_minutes=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES),
        )
    return {"access_token": token, "token_type": "Bearer"}


@read.get("/users/")
def users_list(
    request: Request,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    order_by: Optional[str] = None,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        _actor(request, store, credentials, Role.ADMINISTRATOR)
        return list_users(store, order_by=order_by, page=page, page_size=page_size).to_dict()


@read.get("/users/{uid}")
def users_get(
    uid: int,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.SUBSCRIBER)
        return get_user(store, identity, uid)


@read.get("/posts/")
def posts_list(
    request: Request,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    order_by: Optional[str] = None,
    with_meta: bool = False,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _optional_actor(request, store, credentials)
        return posts.list_posts(
            store,
            order_by=order_by,
            page=page,
            page_size=page_size,
            with_meta=with_meta,
            identity=identity,
        ).to_dict()


@read.get("/posts/{slug}")
def posts_get(
    slug: str,
    request: Request,
    with_meta: bool = False,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _optional_actor(request, store, credentials)
        return posts.get_post(store, slug, with_meta=with_meta, identity=identity)


@read.get("/metas/")
def metas_list(
    request: Request,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    order_by: Optional[str] = None,
    type: Optional[str] = None,
) -> Dict[str, Any]:
    with _open(request) as store:
        return metas.list_metas(
            store, meta_type=type, order_by=order_by, page=page, page_size=page_size
        ).to_dict()


@read.get("/attachments/")
def attachments_list(
    request: Request,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    order_by: Optional[str] = None,
    private: Optional[bool] = None,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.SUBSCRIBER)
        return attachments.list_attachments(
            store, identity, private=private, order_by=order_by, page=page, page_size=page_size
        ).to_dict()


@read.get("/attachments/{cid}")
def attachments_get(
    cid: int,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.SUBSCRIBER)
        return attachments.get_attachment(store, identity, cid)


@read.get("/posts/{slug}/attachments/")
def post_attachments_list(
    slug: str,
    request: Request,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    order_by: Optional[str] = None,
) -> Dict[str, Any]:
    with _open(request) as store:
        return attachments.list_content_attachments(
            store, slug, order_by=order_by, page=page, page_size=page_size
        ).to_dict()


@read.get("/comments/")
def comments_list(
    request: Request,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    order_by: Optional[str] = None,
    private: Optional[bool] = None,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.SUBSCRIBER)
        return comments.list_comments(
            store, identity, private=private, order_by=order_by, page=page, page_size=page_size
        ).to_dict()


@read.get("/posts/{slug}/comments/")
@read.get("/pages/{slug}/comments/")
def content_comments_list(
    slug: str,
    request: Request,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    order_by: Optional[str] = None,
) -> Dict[str, Any]:
    with _open(request) as store:
        return comments.list_content_comments(
            store, slug, order_by=order_by, page=page, page_size=page_size
        ).to_dict()


# -----------------------------
# Write routes (omitted when READ_ONLY)
# -----------------------------

write = APIRouter(prefix="/api")


@write.post("/users/", status_code=201)
def register(payload: RegisterRequest, request: Request) -> Dict[str, Any]:
    if not _cfg(request).ALLOW_REGISTER:
        raise PermissionDenied()
    with _open(request) as store:
        uid = create_user(
            store,
            name=payload.name,
            mail=payload.mail,
            password=payload.password,
            url=payload.url,
        )
    return {"id": uid}


@write.patch("/users/{uid}")
def users_modify(
    uid: int,
    payload: ModifyUserRequest,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.SUBSCRIBER)
        return modify_user(
            store,
            identity,
            uid,
            name=payload.name,
            mail=payload.mail,
            url=payload.url,
            screen_name=payload.screenName,
            group=payload.group,
            password=payload.password,
        )


@write.post("/posts/", status_code=201)
def posts_create(
    payload: CreatePostRequest,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.CONTRIBUTOR)
        cid = posts.create_post(store, identity, payload.model_dump())
    return {"id": cid}


@write.patch("/posts/{slug}")
def posts_modify(
    slug: str,
    payload: ModifyPostRequest,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.CONTRIBUTOR)
        return posts.modify_post(store, identity, slug, payload.model_dump(exclude_none=True))


@write.delete("/posts/{slug}")
def posts_delete(
    slug: str,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.CONTRIBUTOR)
        posts.delete_post(store, identity, slug)
    return {"ok": True}


@write.post("/posts/{slug}/metas/", status_code=201)
def posts_link_meta(
    slug: str,
    payload: LinkMetaRequest,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.CONTRIBUTOR)
        posts.link_meta(store, identity, slug, payload.mid)
    return {"ok": True}


@write.post("/metas/", status_code=201)
def metas_create(
    payload: CreateMetaRequest,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.EDITOR)
        return metas.create_meta(
            store,
            identity,
            name=payload.name,
            slug=payload.slug,
            meta_type=payload.type,
            description=payload.description,
            parent=payload.parent,
        )


def _upload_parts(file: Optional[UploadFile]) -> Dict[str, Any]:
    if file is None:
        raise InvalidParams("file")
    return {"filename": file.filename, "content_type": file.content_type, "stream": file.file}


@write.post("/attachments/", status_code=201)
def attachments_create(
    request: Request,
    file: Optional[UploadFile] = File(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.CONTRIBUTOR)
        return attachments.create_attachment(store, identity, _storage(request), **_upload_parts(file))


@write.put("/attachments/{cid}")
def attachments_replace(
    cid: int,
    request: Request,
    file: Optional[UploadFile] = File(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.CONTRIBUTOR)
        return attachments.modify_attachment(store, identity, _storage(request), cid, **_upload_parts(file))


@write.delete("/attachments/{cid}")
def attachments_delete(
    cid: int,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.CONTRIBUTOR)
        attachments.delete_attachment(store, identity, _storage(request), cid)
    return {"ok": True}


@write.post("/posts/{slug}/attachments/", status_code=201)
def post_attachments_add(
    slug: str,
    payload: AttachRequest,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.CONTRIBUTOR)
        return attachments.attach_to_content(store, identity, slug, payload.cid)


@write.delete("/posts/{slug}/attachments/{cid}")
def post_attachments_remove(
    slug: str,
    cid: int,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.CONTRIBUTOR)
        attachments.detach_from_content(store, identity, slug, cid)
    return {"ok": True}


@write.post("/posts/{slug}/comments/", status_code=201)
@write.post("/pages/{slug}/comments/", status_code=201)
def content_comments_create(
    slug: str,
    payload: CreateCommentRequest,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.SUBSCRIBER)
        return comments.create_comment(
            store,
            identity,
            slug,
            text=payload.text,
            parent=payload.parent,
            ip=request.client.host if request.client else None,
            agent=request.headers.get("user-agent"),
        )


@write.delete("/comments/{coid}")
def comments_delete(
    coid: int,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    with _open(request) as store:
        identity = _actor(request, store, credentials, Role.SUBSCRIBER)
        comments.delete_comment(store, identity, coid)
    return {"ok": True}


# -----------------------------
# App factory
# -----------------------------


async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    field = None
    for err in exc.errors():
        loc = err.get("loc") or ()
        if loc:
            field = str(loc[-1])
            break
    return await _api_error(request, InvalidParams(field))


def _startup(cfg: Config) -> None:
    # Ensure schema exists.
    init_db(cfg.DB_DSN, users_table=cfg.USERS_TABLE)

    # Bootstrap first admin if needed (only when users table is empty)
    boot = bootstrap_admin_if_needed(cfg)
    if boot:
        _debug(f"Bootstrapped initial administrator: name={boot.get('name')} uid={boot.get('uid')}")
    if cfg.READ_ONLY:
        _debug("Read-only mode: mutating routes are not mounted")


def create_app(cfg: Config) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        _startup(cfg)
        yield

    app = FastAPI(title="Content Platform", version=__version__, lifespan=lifespan)
    app.state.cfg = cfg
    app.state.storage = LocalStorage(cfg.UPLOAD_ROOT)

    # CORS is mainly needed for local development (a separate frontend dev server -> API on :8000).
    _cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if _cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=_cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(ApiError, _api_error)
    app.add_exception_handler(RequestValidationError, _validation_error)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    app.include_router(read)
    if not cfg.READ_ONLY:
        app.include_router(write)
    return app


app = create_app(load_config())
