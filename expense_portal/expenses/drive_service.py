# expense_portal/expenses/drive_service.py
import json
import logging
import uuid
from typing import Any, AsyncIterator, BinaryIO, Dict, List, Optional

import httpx
from starlette.concurrency import run_in_threadpool

from ..errors import TokenInvalidError, UploadFailed

logger = logging.getLogger(__name__)

DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
UPLOAD_CHUNK_SIZE = 256 * 1024


def _drive_error_text(response: httpx.Response) -> str:
    if not response.content:
        return f"HTTP {response.status_code}"
    try:
        parsed = response.json()
    except json.JSONDecodeError:
        return response.text
    error = parsed.get("error") if isinstance(parsed, dict) else None
    if isinstance(error, dict):
        return error.get("message") or response.text
    return response.text


class MultipartRelatedBody:
    """
    Drive 'multipart/related' upload body (JSON metadata part + media part) produced
    chunk by chunk from a file object, so the receipt is never held in memory whole.
    """

    def __init__(self, metadata: Dict[str, Any], media: BinaryIO, media_size: int, mime_type: str):
        self.boundary = "expense_portal_" + uuid.uuid4().hex
        self.media = media
        self.preamble = (
            f"--{self.boundary}\r\n"
            f"Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{json.dumps(metadata)}\r\n"
            f"--{self.boundary}\r\n"
            f"Content-Type: {mime_type}\r\n\r\n"
        ).encode("utf-8")
        self.epilogue = f"\r\n--{self.boundary}--\r\n".encode("utf-8")
        self.content_length = len(self.preamble) + media_size + len(self.epilogue)

    @property
    def content_type(self) -> str:
        return f"multipart/related; boundary={self.boundary}"

    async def stream(self) -> AsyncIterator[bytes]:
        yield self.preamble
        while True:
            chunk = await run_in_threadpool(self.media.read, UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
        yield self.epilogue


class GoogleDriveService:
    """Uploads files to Google Drive on behalf of the logged-in user."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client
        logger.info("GoogleDriveService initialized with httpx.AsyncClient.")

    async def upload_file(
        self,
        access_token: str,
        name: str,
        media: BinaryIO,
        media_size: int,
        mime_type: str,
        parents: List[str],
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Single-request multipart upload. Returns Drive's JSON with 'id' and 'webViewLink'.

        Raises TokenInvalidError on 401 (nothing was created) and UploadFailed on any other
        failure. Never retries on its own.
        """
        metadata: Dict[str, Any] = {"name": name, "parents": parents}
        if description:
            metadata["description"] = description
        body = MultipartRelatedBody(metadata, media, media_size, mime_type)
        params = {
            "uploadType": "multipart",
            "supportsAllDrives": "true",
            "fields": "id,name,webViewLink,parents",
        }
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": body.content_type,
            "Content-Length": str(body.content_length),
        }

        logger.debug(f"Drive upload: '{name}' ({media_size} bytes, {mime_type}) into parents {parents}")
        try:
            response = await self.client.post(
                DRIVE_UPLOAD_URL, params=params, headers=headers, content=body.stream()
            )
        except httpx.TimeoutException as e:
            logger.error(f"Drive upload timed out for '{name}': {e}")
            raise UploadFailed(provider_message=f"timeout: {e}") from e
        except httpx.RequestError as e:
            logger.error(f"Drive upload connection/request error for '{name}': {e}")
            raise UploadFailed(provider_message=f"Google Drive connection error: {e}") from e

        if response.status_code == 401:
            error_text = _drive_error_text(response)
            logger.info(f"Drive rejected the access token: {error_text}")
            raise TokenInvalidError(provider_message=error_text)

        if not 200 <= response.status_code < 300:
            error_text = _drive_error_text(response)
            logger.error(
                f"Google API HTTP Error: POST {DRIVE_UPLOAD_URL} - Status {response.status_code} - {error_text}"
            )
            raise UploadFailed(provider_message=f"Google Drive error ({response.status_code}): {error_text}")

        try:
            created = response.json()
        except json.JSONDecodeError as e:
            logger.error(f"Drive upload response was not JSON. Body: {response.text[:300]}")
            raise UploadFailed(provider_message="Failed to decode Drive response.") from e
        if not created.get("id"):
            logger.error(f"Drive upload returned no file id. Response: {created}")
            raise UploadFailed(provider_message="No file id returned by Drive API.")

        logger.info(f"Uploaded '{created.get('name', name)}' to Drive with ID: {created['id']}")
        return created
