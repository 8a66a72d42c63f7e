"""
StoredFile model: metadata for one uploaded file. The bytes live in the blob
store under storage_path; the record is scoped to its owner.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredFile(BaseModel, Base):
    __tablename__ = "files"

    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    extension = Column(String(32), nullable=False, default="")
    mime_type = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False, default=0)
    upload_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    storage_path = Column(String(1024), nullable=False, unique=True)

    owner = relationship("User", back_populates="files")

    __table_args__ = (
        CheckConstraint("size >= 0", name="ck_files_size_nonnegative"),
        Index("ix_files_owner_upload_date", "owner_id", "upload_date"),
    )

    def __repr__(self):
        return f"<StoredFile {self.id} owner={self.owner_id} name={self.name!r}>"

    def is_owned_by(self, user_id: str) -> bool:
        return self.owner_id == user_id

    # Registry queries. All take an explicit session so callers control commits.

    @classmethod
    def find(cls, session, file_id: str) -> Optional["StoredFile"]:
        return session.get(cls, file_id)

    @classmethod
    def page_for_owner(cls, session, owner_id: str, page: int, page_size: int) -> Tuple[List["StoredFile"], int]:
        """Return (rows, total) for one owner, newest upload first.

        Pages past the end are empty. offset and limit never exceed total, so
        arbitrarily large page numbers or sizes stay within the database's
        integer range.
        """
        query = session.query(cls).filter(cls.owner_id == owner_id)
        total = query.count()
        offset = (page - 1) * page_size
        if offset >= total:
            return [], total
        rows = (
            query.order_by(cls.upload_date.desc(), cls.created_at.desc(), cls.id.desc())
            .offset(offset)
            .limit(min(page_size, total - offset))
            .all()
        )
        return rows, total

    @classmethod
    def referenced_paths(cls, session) -> set:
        return {path for (path,) in session.query(cls.storage_path).all()}
