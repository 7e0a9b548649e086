# expense_portal/__init__.py
"""Expense Portal: expense submission to Google Drive behind Google login."""

__version__ = "0.1.0"
