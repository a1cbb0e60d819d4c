"""
Core module - settings, database session and the API error envelope.
"""
from .config import Settings, get_settings
from .db import AsyncSessionLocal, Base, create_schema, engine, get_session
from .responses import ErrorCodes, ErrorDetail, ErrorResponse, error_response

__all__ = [
    "Settings",
    "get_settings",
    "AsyncSessionLocal",
    "Base",
    "create_schema",
    "engine",
    "get_session",
    "ErrorCodes",
    "ErrorDetail",
    "ErrorResponse",
    "error_response",
]
