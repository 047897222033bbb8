from __future__ import annotations

import asyncio
import logging
import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..exceptions import (
    ExtractionError,
    ExtractionErrorKind,
    InvalidRequestError,
    StorageError,
)

logger = logging.getLogger(__name__)

MIME_BY_EXTENSION = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "txt": "text/plain",
}


@dataclass(frozen=True)
class StoredFile:
    file_url: str
    file_name: str
    file_size: int
    file_type: str


def file_extension(file_name: str) -> str:
    _, ext = os.path.splitext(file_name or "")
    return ext.lstrip(".").lower()


def sanitize_file_name(original_name: str) -> str:
    stem, ext = os.path.splitext(os.path.basename(original_name or "upload"))
    stem = re.sub(r"[^a-zA-Z0-9_-]", "_", stem) or "upload"
    return f"{uuid.uuid4().hex}_{stem}{ext.lower()}"


def validate_upload(
    file_name: str, size: int, max_bytes: int, allowed: list[str]
) -> str:
    """Check an upload against the size cap and the extension allow-list.

    Returns the normalized extension.
    """
    if size <= 0:
        raise InvalidRequestError("File is empty")
    if size > max_bytes:
        raise InvalidRequestError(
            f"File size must be less than {max_bytes // (1024 * 1024)}MB"
        )
    ext = file_extension(file_name)
    if ext not in allowed:
        raise InvalidRequestError(
            f"File type must be one of: {', '.join(t.upper() for t in allowed)}"
        )
    return ext


class FileStorage:
    """Local-disk upload store addressed by ``/uploads/<name>`` URLs.

    Remote ``http(s)`` locations can be read but are never deleted here.
    """

    def __init__(
        self,
        upload_dir: str | os.PathLike[str],
        public_prefix: str = "/uploads",
        fetch_timeout: float = 30,
    ):
        self.upload_dir = Path(upload_dir)
        self.public_prefix = public_prefix.rstrip("/")
        self.fetch_timeout = fetch_timeout

    def save(self, content: bytes, original_name: str) -> StoredFile:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        name = sanitize_file_name(original_name)
        try:
            (self.upload_dir / name).write_bytes(content)
        except OSError as exc:
            raise StorageError(f"Could not store upload {original_name}: {exc}") from exc
        ext = file_extension(original_name)
        logger.info("Stored upload", extra={"file_name": name, "size": len(content)})
        return StoredFile(
            file_url=f"{self.public_prefix}/{name}",
            file_name=name,
            file_size=len(content),
            file_type=MIME_BY_EXTENSION.get(ext, ext),
        )

    def resolve(self, location: str) -> Path:
        """Map a ``/uploads/<name>`` URL onto a file inside ``upload_dir``.

        Any other local location is refused.
        """
        prefix = self.public_prefix + "/"
        name = location[len(prefix):] if location.startswith(prefix) else ""
        if not name or name != os.path.basename(name) or name in (".", ".."):
            raise InvalidRequestError(f"Unsupported file location: {location}")
        return self.upload_dir / name

    @staticmethod
    def is_remote(location: str) -> bool:
        return location.startswith(("http://", "https://"))

    def check_location(self, location: str) -> None:
        """Raise ``InvalidRequestError`` unless ``location`` is remote or an upload URL."""
        if not self.is_remote(location):
            self.resolve(location)

    async def read(self, location: str) -> bytes:
        if self.is_remote(location):
            return await self._fetch_remote(location)
        try:
            path = self.resolve(location)
            return await asyncio.to_thread(path.read_bytes)
        except (InvalidRequestError, OSError) as exc:
            raise ExtractionError(
                ExtractionErrorKind.FETCH_FAILED, f"Failed to read {location}: {exc}"
            ) from exc

    async def _fetch_remote(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self.fetch_timeout) as client:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(3),
                    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
                    retry=retry_if_exception_type(httpx.TransportError),
                    reraise=True,
                ):
                    with attempt:
                        resp = await client.get(url)
        except httpx.HTTPError as exc:
            raise ExtractionError(
                ExtractionErrorKind.FETCH_FAILED, f"Failed to fetch {url}: {exc}"
            ) from exc
        if resp.status_code != 200:
            raise ExtractionError(
                ExtractionErrorKind.FETCH_FAILED,
                f"Failed to fetch {url}: {resp.status_code} {resp.reason_phrase}",
            )
        return resp.content

    async def delete(self, location: str) -> bool:
        """Best-effort removal; never raises."""
        try:
            return await self._delete(location)
        except (InvalidRequestError, StorageError) as exc:
            logger.warning(f"Could not delete file {location}: {exc}")
            return False

    async def _delete(self, location: str) -> bool:
        if self.is_remote(location):
            logger.info("Skipping delete of remote file", extra={"location": location})
            return False
        path = self.resolve(location)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(str(exc)) from exc
        logger.info("Deleted uploaded file", extra={"location": location})
        return True
