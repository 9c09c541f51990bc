"""Shared FastAPI dependencies."""

from typing import Generator

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from rentpilot.api.errors import AuthenticationError, ValidationError
from rentpilot.config import Settings, get_settings
from rentpilot.services import get_db
from rentpilot.services.document_storage import DocumentStorage, LocalDocumentStorage
from rentpilot.services.gateway import PaystackClient
from rentpilot.services.settlement_service import SettlementService


def get_current_user_id(x_user_id: str | None = Header(None)) -> int:  # noqa: B008
    """Caller identity, as asserted by the upstream auth proxy in X-User-Id."""
    if not x_user_id:
        raise AuthenticationError()
    try:
        return int(x_user_id)
    except ValueError as e:
        raise ValidationError("Invalid X-User-Id header") from e


def get_gateway(
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> Generator[PaystackClient, None, None]:
    client = PaystackClient(settings)
    try:
        yield client
    finally:
        client.close()


def get_document_storage(
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> DocumentStorage:
    return LocalDocumentStorage(settings.upload_dir)


def get_settlement_service(
    db: Session = Depends(get_db),  # noqa: B008
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> SettlementService:
    return SettlementService(db, settings=settings)


__all__ = [
    "get_current_user_id",
    "get_document_storage",
    "get_gateway",
    "get_settlement_service",
]
