"""Hairstyle request intake: debit credits, store the photo, fan out tasks."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

from sqlmodel import Session

from .credits import CreditLedger
from .models import AiTask, CreditConsumption, TaskStatus, User, utcnow
from .providers import ProviderAdapter, ProviderRegistry
from .repository import TaskRepository
from .schemas import CreateHairstyleRequest, HairColorOption, HairstyleOption
from .storage import AssetStorage

logger = logging.getLogger(__name__)


@dataclass
class IntakeResult:
    tasks: list[AiTask]
    consumption: CreditConsumption


class HairstyleIntake:
    def __init__(
        self,
        session: Session,
        providers: ProviderRegistry,
        storage: AssetStorage,
        callback_url: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.providers = providers
        self.storage = storage
        self.callback_url = callback_url
        self.clock = clock

    def create(self, user: User, request: CreateHairstyleRequest, photo: bytes, filename: str) -> IntakeResult:
        """Create one pending task per requested hairstyle, one credit each.

        The debit, its consumption record and the task rows are committed
        together; if anything after the debit fails the transaction is rolled
        back and the user keeps their credits.
        """
        adapter = self.providers.for_type(request.type)

        # debit first: an insufficient balance must not leave an uploaded photo behind
        consumption = CreditLedger(self.session).consume(user, len(request.hairstyle))
        try:
            photo_url = self.storage.upload(photo, filename)
            now = self.clock()
            rows = [
                self._build_task(user, adapter, photo_url, style, request.hair_color, request.detail, now)
                for style in request.hairstyle
            ]
            tasks = TaskRepository(self.session).insert_batch(rows)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "hairstyle_intake user_id=%s provider=%s tasks=%s",
            user.id,
            adapter.provider.value,
            ",".join(t.task_no for t in tasks),
        )
        return IntakeResult(tasks=tasks, consumption=consumption)

    def _build_task(
        self,
        user: User,
        adapter: ProviderAdapter,
        photo_url: str,
        style: HairstyleOption,
        color: HairColorOption,
        detail: Optional[str],
        now: datetime,
    ) -> AiTask:
        ext = {"hairstyle": style.name}
        if color.value:
            ext["haircolor"] = color.name

        return AiTask(
            task_no=uuid4().hex,
            user_id=user.id,
            status=TaskStatus.PENDING.value,
            provider=adapter.provider.value,
            estimated_start_at=now,
            aspect=adapter.aspect,
            input_params={
                "photo": photo_url,
                "hair_color": color.model_dump(),
                "hairstyle": style.model_dump(),
                "detail": detail,
            },
            ext=ext,
            request_param=adapter.build_request_param(
                photo_url=photo_url,
                style=style,
                color=color,
                detail=detail,
                callback_url=self.callback_url,
            ),
        )
