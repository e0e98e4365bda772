from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


# ── Document table ────────────────────────────────────────────────────────────
# Every collection (bookings, availability, userProfiles, emailQueue) lives in
# one table keyed by (collection, id). The payload is the raw document.

class Document(Base):
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)      # e.g. "bookings"
    id = Column(String, primary_key=True)              # e.g. "b4f1c2..."
    data = Column(JSON, nullable=False)                # {"date": "2025-07-07", ...}
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_documents_collection", "collection"),
    )
