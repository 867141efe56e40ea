"""Thin httpx client for the hosted files API (enqueue, status, passages, search)."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from parse_bench.errors import MissingCredentialsError, RemoteServiceError, UploadError
from parse_bench.status import JobStatus, parse_remote_status
from parse_bench.types import Passage, PassageMeta, PassagePage, SearchHit

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.botpress.cloud"

_BLANK_RUN = re.compile(r"\n{3,}")


@dataclass(slots=True)
class EnqueuedFile:
    file_id: str
    upload_url: str | None
    status: JobStatus


@dataclass(slots=True)
class RemoteFileStatus:
    status: JobStatus
    failed_reason: str | None = None
    usage: Any = None


def credential_flags() -> dict[str, bool]:
    return {
        "has_bot_id": bool(os.getenv("BOTPRESS_BOT_ID")),
        "has_token": bool(os.getenv("BOTPRESS_TOKEN")),
    }


def normalize_passage_text(text: str) -> str:
    """Normalize whitespace the same way for every method's passages."""
    text = text.replace("\r\n", "\n").replace("\t", "  ")
    return _BLANK_RUN.sub("\n\n", text).strip()


class FilesApiClient:
    """Request/response wrapper over the files API; retries belong to callers."""

    def __init__(
        self,
        *,
        token: str,
        bot_id: str,
        base_url: str = DEFAULT_API_URL,
        timeout_seconds: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not token or not bot_id:
            raise MissingCredentialsError("Missing BOTPRESS_TOKEN or BOTPRESS_BOT_ID environment variables")
        headers = {"Authorization": f"Bearer {token}", "x-bot-id": bot_id}
        timeout = httpx.Timeout(timeout_seconds)
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        # Presigned upload URLs must not receive the API credentials.
        self._upload_client = httpx.Client(timeout=timeout, transport=transport)

    @classmethod
    def from_env(cls, *, transport: httpx.BaseTransport | None = None) -> "FilesApiClient":
        return cls(
            token=os.getenv("BOTPRESS_TOKEN", ""),
            bot_id=os.getenv("BOTPRESS_BOT_ID", ""),
            base_url=os.getenv("BOTPRESS_API_URL") or DEFAULT_API_URL,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()
        self._upload_client.close()

    def enqueue(
        self,
        key: str,
        size: int,
        content_type: str,
        indexing_config: dict[str, Any],
        *,
        tags: dict[str, str] | None = None,
    ) -> EnqueuedFile:
        """Register a file entity for indexing and obtain its upload URL."""

        body: dict[str, Any] = {
            "key": key,
            "size": size,
            "index": True,
            "contentType": content_type,
            "indexing": {"configuration": indexing_config},
        }
        if tags:
            body["tags"] = tags
        payload = self._request("PUT", "/v1/files", json=body)
        file = _require_file(payload)
        return EnqueuedFile(
            file_id=str(file["id"]),
            upload_url=file.get("uploadUrl"),
            status=parse_remote_status(file.get("status", JobStatus.UPLOAD_PENDING.value)),
        )

    def upload_bytes(self, upload_url: str, data: bytes, content_type: str) -> None:
        try:
            response = self._upload_client.put(
                upload_url,
                content=data,
                headers={"Content-Type": content_type},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UploadError(
                f"Upload failed with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"Upload failed: {exc}") from exc

    def get_status(self, file_id: str) -> RemoteFileStatus:
        file = _require_file(self._request("GET", f"/v1/files/{file_id}"))
        try:
            status = parse_remote_status(str(file.get("status")))
        except ValueError as exc:
            raise RemoteServiceError(f"Unrecognized file status: {file.get('status')}") from exc
        return RemoteFileStatus(
            status=status,
            failed_reason=file.get("failedStatusReason"),
            usage=file.get("usage"),
        )

    def list_passages(
        self,
        file_id: str,
        limit: int,
        next_token: str | None = None,
    ) -> PassagePage:
        """Fetch one page of passages; callers loop until `next_token` is None."""

        params: dict[str, Any] = {"limit": limit}
        if next_token:
            params["nextToken"] = next_token
        payload = self._request("GET", f"/v1/files/{file_id}/passages", params=params)
        passages = [
            Passage(
                id=str(item.get("id", "")),
                content=normalize_passage_text(str(item.get("content", ""))),
                meta=PassageMeta.model_validate(item.get("meta") or {}),
            )
            for item in payload.get("passages", [])
        ]
        meta = payload.get("meta") or {}
        return PassagePage(passages=passages, next_token=meta.get("nextToken") or None)

    def search(
        self,
        query: str,
        limit: int,
        *,
        tags: dict[str, str] | None = None,
    ) -> list[SearchHit]:
        """Semantic search across indexed files, in the order the service ranks them."""

        params: dict[str, Any] = {"query": query, "limit": limit}
        if tags:
            params["tags"] = json.dumps(tags)
        payload = self._request("GET", "/v1/files/search", params=params)
        return [
            SearchHit(
                content=normalize_passage_text(str(item.get("content", ""))),
                score=float(item.get("score", 0.0)),
                meta=PassageMeta.model_validate(item.get("meta") or {}),
            )
            for item in payload.get("passages", [])
        ]

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"Files API request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning("Files API %s %s returned %d", method, path, response.status_code)
            raise RemoteServiceError(
                f"Files API returned {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteServiceError(f"Malformed files API payload: {response.text[:400]}") from exc
        if not isinstance(payload, dict):
            raise RemoteServiceError("Files API payload is not an object")
        return payload


def _require_file(payload: dict[str, Any]) -> dict[str, Any]:
    file = payload.get("file")
    if not isinstance(file, dict) or "id" not in file:
        raise RemoteServiceError("Files API response did not include a file")
    return file


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:400]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text[:400]


class FilesApi(Protocol):
    """Operations the benchmark core needs from the hosted files API."""

    def enqueue(
        self,
        key: str,
        size: int,
        content_type: str,
        indexing_config: dict[str, Any],
        *,
        tags: dict[str, str] | None = None,
    ) -> EnqueuedFile:
        """Register a file for indexing."""

    def upload_bytes(self, upload_url: str, data: bytes, content_type: str) -> None:
        """Transfer the raw document."""

    def get_status(self, file_id: str) -> RemoteFileStatus:
        """Fetch the file's current status."""

    def list_passages(self, file_id: str, limit: int, next_token: str | None = None) -> PassagePage:
        """Fetch one page of passages."""

    def search(self, query: str, limit: int, *, tags: dict[str, str] | None = None) -> list[SearchHit]:
        """Search passages."""
