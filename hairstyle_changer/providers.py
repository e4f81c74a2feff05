"""Kie.ai provider client and per-provider adapters.

Each task row carries a provider tag (``kie_4o`` or ``kie_kontext``). The tag
selects an adapter from the registry; the adapter knows how to build that
provider's request payload, submit it, and translate its status report into
one of three outcomes: still in progress, succeeded (with a result URL, which
may be missing) or failed.
"""

from abc import ABC, abstractmethod
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from .errors import ProviderError, UnknownProviderError
from .models import TaskProvider
from .prompts import build_4o_prompt, build_kontext_prompt
from .schemas import HairColorOption, HairstyleOption

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# HTTP client
# -------------------------------------------------------------------
class KieClient:
    """Thin wrapper over the Kie REST API.

    Every response is an envelope ``{"code": 200, "msg": "...", "data": {...}}``;
    anything but ``code == 200`` is raised as ProviderError.
    """

    def __init__(
        self,
        api_key: Optional[str],
        endpoint: str = "https://api.kie.ai",
        timeout: float = 60,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        if not self.api_key:
            raise ProviderError("KIE_API_KEY is missing")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        logger.debug("kie_request method=%s path=%s", method, path)
        try:
            with httpx.Client(base_url=self.endpoint, timeout=self.timeout, transport=self._transport) as client:
                r = client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"kie request failed: {e}") from e

        if r.status_code != 200:
            raise ProviderError(f"kie error {r.status_code}: {r.text[:300]}", code=r.status_code)
        try:
            body = r.json()
        except ValueError as e:
            raise ProviderError(f"kie returned invalid json: {r.text[:300]}") from e
        if not isinstance(body, dict):
            raise ProviderError(f"kie returned unexpected body: {r.text[:300]}")

        code = body.get("code")
        if code != 200:
            raise ProviderError(f"kie error {code}: {body.get('msg')}", code=code)
        data = body.get("data")
        if not isinstance(data, dict):
            raise ProviderError(f"kie response has no data: {body}")
        return data

    def _create(self, path: str, params: dict[str, Any]) -> str:
        data = self._request("POST", path, json=params)
        task_id = data.get("taskId")
        if not task_id:
            raise ProviderError(f"kie response has no taskId: {data}")
        return task_id

    def create_4o_task(self, params: dict[str, Any]) -> str:
        return self._create("/api/v1/gpt4o-image/generate", params)

    def query_4o_task(self, task_id: str) -> dict[str, Any]:
        return self._request("GET", "/api/v1/gpt4o-image/record-info", params={"taskId": task_id})

    def create_kontext_task(self, params: dict[str, Any]) -> str:
        return self._create("/api/v1/flux/kontext/generate", params)

    def query_kontext_task(self, task_id: str) -> dict[str, Any]:
        return self._request("GET", "/api/v1/flux/kontext/record-info", params={"taskId": task_id})


# -------------------------------------------------------------------
# Normalized poll outcome
# -------------------------------------------------------------------
@dataclass(frozen=True)
class InProgress:
    progress: float = 0.0


@dataclass(frozen=True)
class Succeeded:
    result_url: Optional[str]


@dataclass(frozen=True)
class Failed:
    reason: Optional[str]


PollOutcome = Union[InProgress, Succeeded, Failed]


def parse_progress(raw: Any) -> float:
    """Kie reports progress as a string, either "0.42" or "42"; returns a fraction below 1."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    if value > 1:
        value /= 100
    return min(max(value, 0.0), 0.99)


# -------------------------------------------------------------------
# Adapters
# -------------------------------------------------------------------
class ProviderAdapter(ABC):
    provider: TaskProvider
    aspect: str

    def __init__(self, client: KieClient):
        self.client = client

    @abstractmethod
    def build_request_param(
        self,
        *,
        photo_url: str,
        style: HairstyleOption,
        color: HairColorOption,
        detail: Optional[str],
        callback_url: Optional[str],
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def submit(self, request_param: dict[str, Any]) -> str:
        raise NotImplementedError

    @abstractmethod
    def fetch(self, task_id: str) -> dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    @abstractmethod
    def normalize(data: dict[str, Any]) -> PollOutcome:
        raise NotImplementedError

    def query(self, task_id: str) -> tuple[dict[str, Any], PollOutcome]:
        data = self.fetch(task_id)
        return data, self.normalize(data)


class Kie4oAdapter(ProviderAdapter):
    provider = TaskProvider.KIE_4O
    aspect = "2:3"

    def build_request_param(self, *, photo_url, style, color, detail, callback_url):
        files_url = [photo_url]
        if style.cover:
            files_url.append(style.cover)
        if color.cover:
            files_url.append(color.cover)

        params: dict[str, Any] = {
            "filesUrl": files_url,
            "prompt": build_4o_prompt(
                hairstyle=style.name,
                haircolor=color.name,
                haircolor_hex=color.value,
                with_style_reference=bool(style.cover),
                with_color_reference=bool(color.cover),
                detail=detail,
            ),
            "size": self.aspect,
            "nVariants": "4",
        }
        if callback_url:
            params["callBackUrl"] = callback_url
        return params

    def submit(self, request_param):
        return self.client.create_4o_task(request_param)

    def fetch(self, task_id):
        return self.client.query_4o_task(task_id)

    @staticmethod
    def normalize(data):
        status = data.get("status")
        if status == "GENERATING":
            return InProgress(parse_progress(data.get("progress")))
        if status == "SUCCESS":
            urls = (data.get("response") or {}).get("resultUrls") or []
            return Succeeded(urls[0] if urls else None)
        # CREATE_TASK_FAILED, GENERATE_FAILED and anything unknown
        return Failed(data.get("errorMessage"))


class KieKontextAdapter(ProviderAdapter):
    provider = TaskProvider.KIE_KONTEXT
    aspect = "3:4"

    def build_request_param(self, *, photo_url, style, color, detail, callback_url):
        params: dict[str, Any] = {
            "inputImage": photo_url,
            "prompt": build_kontext_prompt(hairstyle=style.name, haircolor=color.name, detail=detail),
            "aspectRatio": self.aspect,
            "model": "flux-kontext-pro",
            "outputFormat": "png",
        }
        if callback_url:
            params["callBackUrl"] = callback_url
        return params

    def submit(self, request_param):
        return self.client.create_kontext_task(request_param)

    def fetch(self, task_id):
        return self.client.query_kontext_task(task_id)

    @staticmethod
    def normalize(data):
        flag = data.get("successFlag")
        if flag == 0:
            return InProgress(0.0)
        if flag == 1:
            response = data.get("response") or {}
            return Succeeded(response.get("resultImageUrl") or response.get("originImageUrl"))
        # 2: create failed, 3: generation failed
        return Failed(data.get("errorMessage"))


# Intake "type" selector -> provider tag
PROVIDER_TYPES = {
    "gpt-4o": TaskProvider.KIE_4O,
    "kontext": TaskProvider.KIE_KONTEXT,
}


class ProviderRegistry:
    def __init__(self, adapters: list[ProviderAdapter]):
        self._adapters = {adapter.provider.value: adapter for adapter in adapters}

    def get(self, provider: str) -> ProviderAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise UnknownProviderError(f"Unknown task provider: {provider!r}")
        return adapter

    def for_type(self, type_: str) -> ProviderAdapter:
        provider = PROVIDER_TYPES.get(type_)
        if provider is None:
            raise UnknownProviderError(f"Unknown provider type: {type_!r}")
        return self.get(provider.value)


def build_registry(client: KieClient) -> ProviderRegistry:
    return ProviderRegistry([Kie4oAdapter(client), KieKontextAdapter(client)])
