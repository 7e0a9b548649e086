# expense_portal/expenses/endpoints.py
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from ..dependencies import get_current_session, get_upload_gateway
from ..errors import Unauthenticated
from ..sessions import SessionData
from .gateway import UploadGateway
from .models import ExpenseSubmission

logger = logging.getLogger(__name__)
expenses_router = APIRouter()


@expenses_router.post("/api/submit-expense", name="submit_expense")
async def submit_expense(
    gateway: Annotated[UploadGateway, Depends(get_upload_gateway)],
    current_session: Annotated[SessionData, Depends(get_current_session)],
    description: Annotated[Optional[str], Form()] = None,
    amount: Annotated[Optional[str], Form()] = None,
    receipt: Annotated[Optional[UploadFile], File()] = None,
):
    """Upload the receipt of one expense to the company's Drive folder."""
    logger.info(
        f"submit-expense: description={description!r}, amount={amount!r}, "
        f"receipt={'SET' if receipt is not None else 'NOT_SET'}"
    )
    if not current_session.is_authenticated:
        # Authentication is checked before any form field is validated
        raise Unauthenticated()
    if receipt is not None and not receipt.filename and not receipt.size:
        # Browsers send an empty part when no file was chosen
        receipt = None

    submission = ExpenseSubmission.from_form(
        description=description,
        amount=amount,
        receipt=receipt.file if receipt is not None else None,
        receipt_size=receipt.size if receipt is not None else None,
        mime_type=receipt.content_type if receipt is not None else None,
        original_filename=receipt.filename if receipt is not None else None,
    )
    result = await gateway.submit(current_session, submission)
    return {"success": True, "fileId": result.file_id, "fileLink": result.web_view_link}
