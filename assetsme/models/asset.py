import uuid

from sqlalchemy import JSON, BigInteger, Column, DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB

from assetsme.db.base import Base


class Asset(Base):
    __tablename__ = "assets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    path = Column(String(1024), nullable=False, unique=True)

    folder_id = Column(
        Uuid(as_uuid=True), ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True
    )
    folder = Column(String(1024), nullable=True, index=True)  # normalized folder path, None = root
    owner_id = Column(String, nullable=False, index=True)

    original_name = Column(String(255), nullable=True)
    mime = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False)
    checksum = Column(String(64), nullable=False)  # sha256 hex of the original bytes

    # variant key -> {"path": ..., "width": ..., "height": ...}
    variants = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
