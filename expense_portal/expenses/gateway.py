# expense_portal/expenses/gateway.py
import logging
from datetime import date
from typing import Callable, Optional

from ..errors import (
    MissingReceipt,
    ServerMisconfigured,
    TokenInvalidError,
    Unauthenticated,
    UploadFailed,
)
from ..oauth.lifecycle import TokenLifecycleManager
from ..sessions import SessionData, TokenSet
from .drive_service import GoogleDriveService
from .models import ExpenseSubmission, UploadResult, build_target_name

logger = logging.getLogger(__name__)


class UploadGateway:
    """
    Validates an expense submission and stores its receipt in the configured Drive folder
    using the submitting user's own credentials.

    Checks run in a fixed order: authentication, receipt presence, folder configuration.
    A Drive 401 triggers exactly one refresh-and-resend; the receipt stream is rewound
    before it is sent again.
    """

    def __init__(
        self,
        lifecycle: TokenLifecycleManager,
        drive_service: GoogleDriveService,
        drive_folder_id: Optional[str],
        clock: Callable[[], date] = date.today,
    ):
        self.lifecycle = lifecycle
        self.drive_service = drive_service
        self.drive_folder_id = drive_folder_id
        self.clock = clock
        logger.info(
            f"UploadGateway initialized. Drive folder: {'SET' if drive_folder_id else 'NOT_SET'}"
        )

    async def submit(self, session_data: SessionData, submission: ExpenseSubmission) -> UploadResult:
        if not session_data.is_authenticated:
            logger.info("submit: Rejected, session is not authenticated.")
            raise Unauthenticated()

        receipt_size = submission.measured_receipt_size()
        if submission.receipt is None or receipt_size == 0:
            logger.info(f"submit: Rejected, no receipt for '{submission.description}'.")
            raise MissingReceipt()

        if not self.drive_folder_id:
            logger.critical("DRIVE_FOLDER_ID is not configured. Receipts cannot be stored.")
            raise ServerMisconfigured(provider_message="DRIVE_FOLDER_ID missing")

        target_name = build_target_name(
            submission.description, submission.amount, self.clock(), submission.original_filename
        )
        tokens = await self.lifecycle.ensure_fresh_tokens(session_data)

        try:
            return await self._upload(tokens, target_name, submission, receipt_size)
        except TokenInvalidError as e:
            logger.info(f"submit: Drive rejected the access token ({e.provider_message}). Refreshing once.")
            tokens = await self.lifecycle.refresh_after_rejection(session_data, tokens)

        self._rewind(submission)
        try:
            return await self._upload(tokens, target_name, submission, receipt_size)
        except TokenInvalidError as e:
            await self.lifecycle.expire_session(session_data, reason="Drive rejected the refreshed token")
            raise Unauthenticated() from e

    async def _upload(
        self, tokens: TokenSet, target_name: str, submission: ExpenseSubmission, receipt_size: int
    ) -> UploadResult:
        created = await self.drive_service.upload_file(
            access_token=tokens.access_token,
            name=target_name,
            media=submission.receipt,
            media_size=receipt_size,
            mime_type=submission.mime_type,
            parents=[self.drive_folder_id],
            description=f"{submission.description} - R$ {submission.amount:.2f}",
        )
        return UploadResult(file_id=created["id"], web_view_link=created.get("webViewLink"))

    @staticmethod
    def _rewind(submission: ExpenseSubmission) -> None:
        try:
            submission.receipt.seek(0)
        except (AttributeError, OSError, ValueError) as e:
            logger.error(f"submit: Receipt stream cannot be rewound for a retry: {e}")
            raise UploadFailed(provider_message=f"receipt stream not seekable: {e}") from e
