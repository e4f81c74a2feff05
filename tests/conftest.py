from __future__ import annotations

from collections import defaultdict, deque
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
from sqlmodel import Session

from hairstyle_changer.config import Settings
from hairstyle_changer.db import create_db_engine, init_db
from hairstyle_changer.errors import ProviderError
from hairstyle_changer.lifecycle import TaskLifecycle
from hairstyle_changer.models import AiTask, TaskStatus, User
from hairstyle_changer.providers import build_registry
from hairstyle_changer.repository import TaskRepository
from hairstyle_changer.storage import AssetStorage

NOW = datetime(2026, 1, 1, 12, 0, 0)


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeKieClient:
    """Stands in for KieClient: scripted task ids and record-info payloads."""

    def __init__(self) -> None:
        self.submitted: list[tuple[str, dict[str, Any]]] = []
        self.queries: list[str] = []
        self.reject_submit = False
        self._records: dict[str, deque[dict[str, Any]]] = defaultdict(deque)
        self._counter = 0

    def script(self, task_id: str, *records: dict[str, Any]) -> None:
        self._records[task_id].extend(records)

    def _create(self, kind: str, params: dict[str, Any]) -> str:
        if self.reject_submit:
            raise ProviderError("kie error 422: bad request", code=422)
        self._counter += 1
        self.submitted.append((kind, params))
        return f"kie-{self._counter}"

    def _query(self, task_id: str) -> dict[str, Any]:
        self.queries.append(task_id)
        records = self._records[task_id]
        # the last scripted record keeps being returned
        return records.popleft() if len(records) > 1 else records[0]

    def create_4o_task(self, params: dict[str, Any]) -> str:
        return self._create("4o", params)

    def query_4o_task(self, task_id: str) -> dict[str, Any]:
        return self._query(task_id)

    def create_kontext_task(self, params: dict[str, Any]) -> str:
        return self._create("kontext", params)

    def query_kontext_task(self, task_id: str) -> dict[str, Any]:
        return self._query(task_id)


class FakeStorage(AssetStorage):
    """In-memory storage; relocation copies nothing, it only records the call."""

    def __init__(self) -> None:
        super().__init__("https://cdn.test/")
        self.objects: dict[str, bytes] = {}
        self.relocated: list[tuple[str, str, str, str]] = []
        self.fail_relocate = False

    def put(self, key: str, content: bytes, content_type: str) -> str:
        self.objects[key] = content
        return self.public_url(key)

    def relocate(self, source_url: str, namespace: str, file_base_name: str, ext: str = "png") -> str:
        if self.fail_relocate:
            raise OSError("bucket unavailable")
        self.relocated.append((source_url, namespace, file_base_name, ext))
        return self.put(f"{namespace}/{file_base_name}.{ext}", b"", "image/png")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        KIE_API_KEY="test-key",
        CDN_URL="https://cdn.test/",
        DOMAIN="https://hair.test",
    )


@pytest.fixture
def session(settings: Settings):
    engine = create_db_engine(settings.DATABASE_URL)
    init_db(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def user(session: Session) -> User:
    user = User(email="ada@example.com", credits=10)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def kie() -> FakeKieClient:
    return FakeKieClient()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def lifecycle(session: Session, kie: FakeKieClient, storage: FakeStorage, clock: FixedClock) -> TaskLifecycle:
    return TaskLifecycle(
        TaskRepository(session),
        build_registry(kie),
        storage=storage,
        relocate_results=True,
        clock=clock,
    )


@pytest.fixture
def make_task(session: Session, user: User):
    counter = {"n": 0}

    def _make(
        provider: str = "kie_4o",
        status: str = TaskStatus.PENDING.value,
        task_id: str | None = None,
        estimated_start_at: datetime = NOW,
    ) -> AiTask:
        counter["n"] += 1
        task = AiTask(
            task_no=f"task-{counter['n']}",
            user_id=user.id,
            provider=provider,
            status=status,
            task_id=task_id,
            estimated_start_at=estimated_start_at,
            request_param={"prompt": "short bob", "size": "2:3"},
            aspect="2:3",
        )
        session.add(task)
        session.commit()
        session.refresh(task)
        return task

    return _make
