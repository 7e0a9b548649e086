# expense_portal/expenses/__init__.py
from .models import ExpenseSubmission, UploadResult, build_target_name, parse_amount
from .drive_service import GoogleDriveService
from .gateway import UploadGateway
from .endpoints import expenses_router

__all__ = [
    "ExpenseSubmission",
    "UploadResult",
    "build_target_name",
    "parse_amount",
    "GoogleDriveService",
    "UploadGateway",
    "expenses_router",
]
