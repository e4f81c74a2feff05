# hairstyle_changer/main.py
# FastAPI application factory and routes

import json
import logging
from pathlib import Path
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlmodel import Session

from .config import BASE_DIR, Settings, settings as default_settings
from .db import create_db_engine, get_session, init_db
from .errors import (
    InsufficientCreditsError,
    InvalidTaskIdError,
    ProviderError,
    TaskIntegrityError,
    TaskNotFoundError,
)
from .intake import HairstyleIntake
from .lifecycle import TaskLifecycle
from .models import User, utcnow
from .providers import KieClient, build_registry
from .repository import TaskRepository
from .schemas import (
    CreateHairstyleRequest,
    CreditConsumptionOut,
    HairstyleTasksOut,
    TaskOut,
    TaskProgressOut,
)
from .storage import build_storage

logger = logging.getLogger(__name__)

STATIC_DIR = BASE_DIR / "static"


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# -------------------------------------------------------------------
# Dependencies
# -------------------------------------------------------------------
def get_current_user(x_user_id: int = Header(...), session: Session = Depends(get_session)) -> User:
    user = session.get(User, x_user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def get_lifecycle(request: Request, session: Session = Depends(get_session)) -> TaskLifecycle:
    state = request.app.state
    return TaskLifecycle(
        TaskRepository(session),
        state.providers,
        storage=state.storage,
        relocate_results=bool(state.settings.RELOCATE_RESULTS),
        clock=state.clock,
    )


def _task_progress(task, progress: float) -> TaskProgressOut:
    return TaskProgressOut(task=TaskOut.model_validate(task), progress=progress)


# -------------------------------------------------------------------
# App factory
# -------------------------------------------------------------------
def create_app(settings: Optional[Settings] = None, static_dir: Optional[Path] = None) -> FastAPI:
    settings = settings or default_settings
    static_dir = Path(static_dir or STATIC_DIR)
    static_dir.mkdir(exist_ok=True, parents=True)
    _configure_logging(settings.LOG_LEVEL)

    engine = create_db_engine(settings.DATABASE_URL)
    init_db(engine)

    app = FastAPI(title="Hairstyle Changer Backend", version="1.0.0")
    app.state.settings = settings
    app.state.engine = engine
    app.state.providers = build_registry(
        KieClient(settings.KIE_API_KEY, endpoint=settings.KIE_ENDPOINT, timeout=settings.KIE_TIMEOUT)
    )
    app.state.storage = build_storage(settings, static_dir)
    app.state.clock = utcnow

    origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.mount("/static", StaticFiles(directory=static_dir), name="static")

    logger.info(
        "app_configured kie_endpoint=%s storage=%s production=%s relocate_results=%s",
        settings.KIE_ENDPOINT,
        settings.STORAGE_BACKEND,
        settings.PRODUCTION,
        settings.RELOCATE_RESULTS,
    )

    # ---------------------------------------------------------------
    # Error mapping
    # ---------------------------------------------------------------
    @app.exception_handler(TaskNotFoundError)
    async def task_not_found(_: Request, exc: TaskNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(TaskIntegrityError)
    async def task_integrity(_: Request, exc: TaskIntegrityError):
        logger.error("task_integrity_error error=%s", exc)
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(InsufficientCreditsError)
    async def insufficient_credits(_: Request, exc: InsufficientCreditsError):
        return JSONResponse(
            status_code=402,
            content={"detail": str(exc), "required": exc.required, "available": exc.available},
        )

    @app.exception_handler(ProviderError)
    async def provider_error(_: Request, exc: ProviderError):
        logger.warning("provider_error code=%s error=%s", exc.code, exc)
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    # ---------------------------------------------------------------
    # Routes
    # ---------------------------------------------------------------
    @app.get("/health")
    def health():
        return {"ok": True, "time": utcnow().isoformat()}

    @app.post("/api/hairstyle", response_model=HairstyleTasksOut)
    def create_hairstyle(
        request: Request,
        photo: UploadFile = File(...),
        hairstyle: str = Form(...),
        hair_color: str = Form(...),
        detail: Optional[str] = Form(None),
        type: str = Form("gpt-4o"),
        user: User = Depends(get_current_user),
        session: Session = Depends(get_session),
    ):
        if not photo.filename:
            raise HTTPException(status_code=400, detail="No file name")
        try:
            payload = CreateHairstyleRequest(
                hairstyle=json.loads(hairstyle),
                hair_color=json.loads(hair_color),
                detail=detail,
                type=type,
            )
        except ValueError as e:  # json errors and pydantic ValidationError
            raise HTTPException(status_code=422, detail=str(e))

        state = request.app.state
        intake = HairstyleIntake(
            session,
            state.providers,
            state.storage,
            callback_url=state.settings.callback_url,
            clock=state.clock,
        )
        result = intake.create(user, payload, photo.file.read(), photo.filename)
        return HairstyleTasksOut(
            tasks=[TaskOut.model_validate(t) for t in result.tasks],
            consumption=CreditConsumptionOut.model_validate(result.consumption),
        )

    @app.get("/api/tasks/{task_no}", response_model=TaskProgressOut)
    def get_task(task_no: str, lifecycle: TaskLifecycle = Depends(get_lifecycle)):
        result = lifecycle.reconcile(task_no)
        return _task_progress(result.task, result.progress)

    @app.post("/webhooks/kie-image")
    def kie_image_webhook(payload: dict[str, Any] = Body(...), lifecycle: TaskLifecycle = Depends(get_lifecycle)):
        data = payload.get("data") or {}
        task_id = data.get("taskId") if isinstance(data, dict) else None
        if not task_id:
            raise HTTPException(status_code=400, detail="Missing taskId")
        try:
            lifecycle.reconcile_by_task_id(task_id)
        except InvalidTaskIdError:
            raise HTTPException(status_code=404, detail="Task not found or not running")
        return {"ok": True}

    return app
