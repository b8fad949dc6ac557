"""Temporary public hosting for exported files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import httpx


LOGGER = logging.getLogger(__name__)


DEFAULT_UPLOAD_URL = "https://tmpfiles.org/api/v1/upload"
UPLOAD_TIMEOUT_SECONDS = 30.0
_VIEW_PREFIX = "https://tmpfiles.org/"
_DOWNLOAD_PREFIX = "https://tmpfiles.org/dl/"


class UploadError(RuntimeError):
    """Raised when the hosting service rejects or fails an upload."""


def direct_download_url(url: str) -> str:
    """Turn a tmpfiles.org page link into its direct download link."""

    if url.startswith(_DOWNLOAD_PREFIX) or not url.startswith(_VIEW_PREFIX):
        return url
    return _DOWNLOAD_PREFIX + url[len(_VIEW_PREFIX):]


class TmpFilesUploader:
    """Upload files to tmpfiles.org and return a direct download link."""

    def __init__(
        self,
        upload_url: str = DEFAULT_UPLOAD_URL,
        *,
        timeout: float = UPLOAD_TIMEOUT_SECONDS,
        client_factory: Optional[Callable[[], httpx.Client]] = None,
    ) -> None:
        self._upload_url = upload_url or DEFAULT_UPLOAD_URL
        self._timeout = timeout
        self._client_factory = client_factory or (lambda: httpx.Client(timeout=self._timeout))

    def upload(self, path: Path) -> str:
        path = Path(path)
        # Markdown is rejected by the service, plain text is not.
        upload_name = path.with_suffix(".txt").name if path.suffix.lower() == ".md" else path.name
        LOGGER.info("Uploading %s to %s as %s", path, self._upload_url, upload_name)
        try:
            with self._client_factory() as client, path.open("rb") as handle:
                response = client.post(self._upload_url, files={"file": (upload_name, handle)})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as error:
            raise UploadError(f"upload failed with status {error.response.status_code}") from error
        except httpx.RequestError as error:
            raise UploadError(f"upload request failed: {error}") from error
        except ValueError as error:
            raise UploadError(f"upload returned invalid JSON: {error}") from error

        if not isinstance(data, dict) or data.get("status") != "success":
            raise UploadError(f"upload was not accepted: {data}")
        url = str((data.get("data") or {}).get("url") or "")
        if not url:
            raise UploadError("upload response did not include a URL")
        return direct_download_url(url)


__all__ = [
    "DEFAULT_UPLOAD_URL",
    "TmpFilesUploader",
    "UploadError",
    "direct_download_url",
]
