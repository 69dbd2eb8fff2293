"""Non-streaming paper API client.

Endpoints:
- POST /papers            {"message", "user_id"} -> {"paper_id", "paper_content"}
- GET  /papers/{paper_id} -> {"paper_id", "paper_content"}

Error messages follow the backend's FastAPI conventions: validation failures
carry ``detail[0].msg``; 400 responses may also carry a plain ``detail``,
``message`` or ``error`` field.
"""

import random
import string
import time
from pathlib import Path
from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel

from kognys.errors import PaperApiError
from kognys.settings import settings


class PaperResponse(BaseModel):
    paper_id: str
    paper_content: str


def generate_user_id() -> str:
    """``user_<epoch ms>_<9 random chars>``."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"user_{int(time.time() * 1000)}_{suffix}"


def get_user_id(data_dir: Path | None = None) -> str:
    """Configured user id, else one generated once and cached in the data dir."""
    if settings.api.user_id:
        return settings.api.user_id

    data_dir = data_dir or settings.data_dir
    id_file = data_dir / "user_id"
    if id_file.exists():
        cached = id_file.read_text().strip()
        if cached:
            return cached

    user_id = generate_user_id()
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        id_file.write_text(user_id)
    except OSError as e:
        logger.warning(f"Could not cache user id in {id_file}: {e}")
    return user_id


def extract_error_message(status_code: int, payload: Any) -> str:
    """Pick the most useful error message from an error response body."""
    default = f"HTTP error! status: {status_code}"
    if not isinstance(payload, dict):
        return default

    detail = payload.get("detail")
    first_msg = None
    if isinstance(detail, list) and detail and isinstance(detail[0], dict):
        first_msg = detail[0].get("msg")

    if status_code == 400:
        plain_detail = detail if isinstance(detail, str) else None
        return first_msg or plain_detail or payload.get("message") or payload.get("error") or default
    return first_msg or default


class PaperApi:
    """Create and fetch papers without streaming."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.api.base_url).rstrip("/")
        self.timeout = settings.api.timeout if timeout is None else timeout
        self._client = client

    async def _request(self, method: str, path: str, **kwargs: Any) -> PaperResponse:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            if self._client is not None:
                response = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise PaperApiError(f"Failed to reach paper API: {e}") from e

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            message = extract_error_message(response.status_code, payload)
            logger.error(f"{method} {url} -> {response.status_code}: {message}")
            raise PaperApiError(message, status_code=response.status_code)

        return PaperResponse.model_validate(response.json())

    async def create_paper(self, message: str, user_id: str | None = None) -> PaperResponse:
        """Generate a paper synchronously (blocks until the backend finishes)."""
        body = {"message": message, "user_id": user_id or get_user_id()}
        return await self._request("POST", "/papers", json=body)

    async def get_paper(self, paper_id: str) -> PaperResponse:
        return await self._request("GET", f"/papers/{paper_id}")
