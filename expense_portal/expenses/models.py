# expense_portal/expenses/models.py
import mimetypes
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, BinaryIO, Optional

from pydantic import BaseModel, Field

from ..errors import InvalidExpense

MAX_DESCRIPTION_LENGTH = 200
DEFAULT_MIME_TYPE = "application/octet-stream"

_UNSAFE_NAME_CHARS = re.compile(r'[\\/:*?"<>|\r\n\t]+')
# 1.234,56 or 1234,56; comma is the decimal separator
_BRAZILIAN_AMOUNT = re.compile(r"(?:\d{1,3}(?:\.\d{3})+|\d+),\d{1,2}")
# 1234.56 or 1234
_PLAIN_AMOUNT = re.compile(r"\d+(?:\.\d{1,2})?")
MAX_AMOUNT_INTEGER_DIGITS = 12


class ExpenseSubmission(BaseModel):
    """
    One expense as posted by the form. Lives only for the duration of the request;
    the receipt stream is forwarded to Drive and then discarded.
    """

    description: str
    amount: Decimal
    # Readable, seekable binary file object (the multipart spool file)
    receipt: Optional[Any] = None
    receipt_size: Optional[int] = None
    mime_type: str = DEFAULT_MIME_TYPE
    original_filename: Optional[str] = None

    @classmethod
    def from_form(
        cls,
        description: Optional[str],
        amount: Optional[str],
        receipt: Optional[BinaryIO] = None,
        receipt_size: Optional[int] = None,
        mime_type: Optional[str] = None,
        original_filename: Optional[str] = None,
    ) -> "ExpenseSubmission":
        """Validate raw form fields. Raises InvalidExpense with a user-facing message."""
        description = (description or "").strip()
        if not description:
            raise InvalidExpense("A descrição da despesa é obrigatória.")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise InvalidExpense(f"A descrição deve ter no máximo {MAX_DESCRIPTION_LENGTH} caracteres.")

        if not mime_type or mime_type == DEFAULT_MIME_TYPE:
            guessed, _ = mimetypes.guess_type(original_filename or "")
            mime_type = guessed or mime_type or DEFAULT_MIME_TYPE

        return cls(
            description=description,
            amount=parse_amount(amount),
            receipt=receipt,
            receipt_size=receipt_size,
            mime_type=mime_type,
            original_filename=original_filename or None,
        )

    def measured_receipt_size(self) -> int:
        """Size of the receipt in bytes; 0 when absent. Leaves the stream at position 0."""
        if self.receipt is None:
            return 0
        if self.receipt_size is not None:
            return self.receipt_size
        self.receipt.seek(0, 2)
        size = self.receipt.tell()
        self.receipt.seek(0)
        self.receipt_size = size
        return size


class UploadResult(BaseModel):
    file_id: str = Field(description="Drive file id of the uploaded receipt.")
    web_view_link: Optional[str] = Field(default=None, description="Shareable link to the file.")


def parse_amount(raw: Optional[str]) -> Decimal:
    """
    Parse '42.50', '42,50', '1.234,56' or '1234,5' into a positive Decimal.

    Only digits and separators are accepted, with at most two decimal places and
    MAX_AMOUNT_INTEGER_DIGITS digits before the decimal separator. Mixed notations such as
    '1,234.56' are rejected instead of guessed.
    """
    text = (raw or "").strip().replace("R$", "").replace(" ", "")
    if not text:
        raise InvalidExpense("O valor da despesa é obrigatório.")
    if _BRAZILIAN_AMOUNT.fullmatch(text):
        # Dots group thousands, comma separates decimals
        text = text.replace(".", "").replace(",", ".")
    elif not _PLAIN_AMOUNT.fullmatch(text):
        raise InvalidExpense(f"Valor inválido: '{raw}'. Use o formato 42,50 ou 42.50.")

    if len(text.split(".")[0].lstrip("0")) > MAX_AMOUNT_INTEGER_DIGITS:
        raise InvalidExpense(f"Valor inválido: '{raw}'.")
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise InvalidExpense(f"Valor inválido: '{raw}'.")
    if value <= 0:
        raise InvalidExpense("O valor da despesa deve ser maior que zero.")
    return value


def build_target_name(
    description: str, amount: Decimal, on: date, original_filename: Optional[str] = None
) -> str:
    """
    Drive file name for a receipt, e.g. '2024-05-03 - Taxi - R$ 42.50.pdf'.
    The extension of the uploaded file is preserved.
    """
    safe_description = _UNSAFE_NAME_CHARS.sub("-", description).strip(" .-") or "Despesa"
    extension = ""
    if original_filename and "." in original_filename:
        extension = "." + _UNSAFE_NAME_CHARS.sub("", original_filename.rsplit(".", 1)[1]).lower()
        if extension == ".":
            extension = ""
    return f"{on.isoformat()} - {safe_description} - R$ {amount:.2f}{extension}"
