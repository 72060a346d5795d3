"""HTTP clients for the automation backend and the copilot job lookup service.

Both clients open a short-lived ``httpx.AsyncClient`` per call. Network
failures are raised as ``TransportError`` so callers can tell them apart from
answers the remote side actually gave.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import BackendError, NotFoundError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
# InvalidURL is not an HTTPError; a malformed base URL surfaces here.
_CLIENT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


@dataclass(frozen=True)
class BackendResult:
    success: bool
    data: Any = None
    error: str | None = None


class MaaBackendClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def execute(self, command: str, arguments: str, task_config: str | None = None) -> BackendResult:
        url = f"{self.base_url}/execute"
        body: dict[str, Any] = {"command": command, "arguments": arguments}
        if task_config is not None:
            body["taskConfig"] = task_config
        try:
            async with self._client() as client:
                response = await client.post(url, json=body)
        except _CLIENT_ERRORS as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and "success" in payload:
            success = bool(payload.get("success"))
            error = payload.get("error")
            if not success and not error:
                error = f"Backend returned HTTP {response.status_code}."
            return BackendResult(success=success, data=payload.get("data"), error=error)
        if response.is_error:
            return BackendResult(success=False, error=f"Backend returned HTTP {response.status_code}.")
        return BackendResult(success=False, error="Backend returned a malformed response.")

    async def get_version(self) -> dict[str, Any] | None:
        url = f"{self.base_url}/version"
        try:
            async with self._client() as client:
                response = await client.get(url)
            response.raise_for_status()
            payload = response.json()
        except (*_CLIENT_ERRORS, ValueError) as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc
        if isinstance(payload, dict) and payload.get("success") and isinstance(payload.get("data"), dict):
            return payload["data"]
        return None


class CopilotLookupClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def get_copilot(self, job_id: str) -> dict[str, Any]:
        """Return the job document for ``job_id``.

        Raises ``NotFoundError`` when the service knows no single job with
        that id, ``BackendError`` for any other non-success status in the
        body, and ``TransportError`` when the service cannot be reached or
        answers with an HTTP error other than 404.
        """
        url = f"{self.base_url}/copilot/get/{job_id}"
        try:
            async with self._client() as client:
                response = await client.get(url)
        except _CLIENT_ERRORS as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc

        if response.status_code == 404:
            raise NotFoundError(job_id)
        if response.is_error:
            raise TransportError(f"Lookup service returned HTTP {response.status_code}.")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError("Lookup service returned invalid JSON.") from exc

        status_code = payload.get("status_code") if isinstance(payload, dict) else None
        data = payload.get("data") if isinstance(payload, dict) else None
        if status_code == 404:
            raise NotFoundError(job_id)
        if status_code != 200 or not data:
            message = payload.get("message") if isinstance(payload, dict) else None
            raise BackendError(message or "Job does not exist.")
        return _parse_content(data)


def _parse_content(data: Any) -> dict[str, Any]:
    content = data.get("content") if isinstance(data, dict) else None
    if isinstance(content, dict):
        return content
    if isinstance(content, str):
        try:
            parsed = json.loads(content)
        except ValueError:
            logger.warning("copilot document content is not valid JSON; using placeholders")
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}
