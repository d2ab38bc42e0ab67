from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import SessionAuthority, StaticCredentialVerifier
from .configuration import Settings, get_settings
from .database import OrderDatabase
from .middleware import JSONBodyLimitMiddleware
from .models import (
    ActionResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    Order,
    OrderSubmission,
    StatusUpdate,
    SubmitOrderResponse,
    VerifyRequest,
    VerifyResponse,
)
from .order_service import OrderService
from .uploads import UploadHandler, UploadTooLargeError
from .utils import isoformat_utc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_session_authority(request: Request) -> SessionAuthority:
    return request.app.state.session_authority


def require_admin(
    sessionid: Optional[str] = Header(None),
    authority: SessionAuthority = Depends(get_session_authority),
) -> str:
    """Guard for admin-only routes: the `sessionid` header must hold a live session."""
    if not authority.verify(sessionid):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return sessionid  # type: ignore[return-value]


@router.post("/admin/login", response_model=LoginResponse, response_model_exclude_none=True)
def admin_login(
    credentials: Optional[LoginRequest] = None,
    authority: SessionAuthority = Depends(get_session_authority),
):
    credentials = credentials or LoginRequest()
    session_id = authority.login(credentials.username, credentials.password)
    if session_id is None:
        body = LoginResponse(success=False, message="Invalid credentials")
        return JSONResponse(status_code=401, content=body.model_dump(by_alias=True, exclude_none=True))
    return LoginResponse(success=True, session_id=session_id, message="Login successful")


@router.post("/admin/verify", response_model=VerifyResponse)
def admin_verify(
    payload: Optional[VerifyRequest] = None,
    authority: SessionAuthority = Depends(get_session_authority),
):
    if payload is None or not payload.session_id:
        return JSONResponse(status_code=401, content={"valid": False})
    return VerifyResponse(valid=authority.verify(payload.session_id))


@router.post("/orders", response_model=SubmitOrderResponse)
async def submit_order(
    order_data: Optional[str] = Form(None, alias="orderData"),
    files: Optional[List[UploadFile]] = File(None),
    service: OrderService = Depends(get_order_service),
) -> SubmitOrderResponse:
    if not order_data:
        raise HTTPException(status_code=400, detail="orderData is required")

    try:
        submission = OrderSubmission.model_validate(json.loads(order_data))
    except json.JSONDecodeError as exc:  # noqa: BLE001
        raise HTTPException(status_code=400, detail=f"Invalid orderData JSON: {exc}") from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid order: {exc.error_count()} field error(s)") from exc

    try:
        stored = await service.uploads.store_all(files or [])
    except UploadTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc

    order_id = service.submit(submission, stored)
    return SubmitOrderResponse(success=True, order_id=order_id, message="Order submitted successfully")


@router.get("/orders", response_model=List[Order], dependencies=[Depends(require_admin)])
def list_orders(service: OrderService = Depends(get_order_service)) -> List[Order]:
    return service.list_orders()


@router.get("/orders/{order_id}", response_model=Order)
def get_order(order_id: str, service: OrderService = Depends(get_order_service)) -> Order:
    order = service.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.put("/orders/{order_id}/status", response_model=ActionResponse, dependencies=[Depends(require_admin)])
def update_order_status(
    order_id: str,
    payload: Optional[StatusUpdate] = None,
    service: OrderService = Depends(get_order_service),
) -> ActionResponse:
    if payload is None or payload.status is None:
        raise HTTPException(status_code=400, detail="status is required")
    if not service.update_status(order_id, payload.status):
        raise HTTPException(status_code=404, detail="Order not found")
    return ActionResponse(success=True, message="Order status updated")


@router.delete("/orders", response_model=ActionResponse, dependencies=[Depends(require_admin)])
def clear_orders(service: OrderService = Depends(get_order_service)) -> ActionResponse:
    service.clear_all()
    return ActionResponse(success=True, message="All orders cleared")


@router.get("/files/{filename}")
def download_file(filename: str, service: OrderService = Depends(get_order_service)) -> FileResponse:
    path = service.resolve_file(filename)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, filename=path.name)


@router.get("/health", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    return HealthResponse(status="OK", timestamp=isoformat_utc(utcnow()))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    database = OrderDatabase(settings.database_file).open()
    uploads = UploadHandler(settings.upload_root, settings.max_upload_bytes)

    app.state.database = database
    app.state.order_service = OrderService(database, uploads)
    app.state.session_authority = SessionAuthority(
        StaticCredentialVerifier(settings.admin_username, settings.admin_password),
        database,
        ttl=timedelta(hours=settings.session_ttl_hours),
    )

    logger.info(f"Database path: {database.db_path}")
    logger.info(f"Uploads directory: {uploads.upload_root}")
    try:
        yield
    finally:
        database.close()


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())})


async def _server_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Server error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _mount_frontend(app: FastAPI, settings: Settings) -> None:
    if settings.images_root.is_dir():
        app.mount("/images", StaticFiles(directory=settings.images_root), name="images")

    static_root = settings.static_root.resolve()

    @app.get("/{full_path:path}", include_in_schema=False)
    def frontend(full_path: str) -> FileResponse:
        if full_path == "api" or full_path.startswith("api/"):
            raise HTTPException(status_code=404, detail="Not found")

        candidate = (static_root / full_path).resolve()
        if full_path and candidate.is_file() and static_root in candidate.parents:
            return FileResponse(candidate)

        index = static_root / "index.html"
        if not index.is_file():
            raise HTTPException(status_code=404, detail="Not found")
        return FileResponse(index)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title="Print Orders API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(JSONBodyLimitMiddleware, max_bytes=settings.max_json_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _server_error)

    app.include_router(router)
    _mount_frontend(app, settings)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":  # pragma: no cover
    run()
