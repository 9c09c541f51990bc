"""Stored document handle (proof-of-payment uploads)."""

from enum import Enum

from sqlalchemy import Enum as SQLEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from rentpilot.models import Base, BaseModel


class DocumentType(str, Enum):
    RECEIPT = "RECEIPT"
    OTHER = "OTHER"


class Document(Base, BaseModel):
    """Metadata for a file kept by the document storage backend."""

    __tablename__ = "documents"

    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(500), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(nullable=False)
    doc_type: Mapped[DocumentType] = mapped_column(
        SQLEnum(DocumentType), nullable=False, default=DocumentType.RECEIPT
    )
    lease_id: Mapped[int] = mapped_column(ForeignKey("leases.id"), nullable=False, index=True)
    uploaded_by_id: Mapped[int] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, filename='{self.filename}', lease_id={self.lease_id})>"


__all__ = ["Document", "DocumentType"]
