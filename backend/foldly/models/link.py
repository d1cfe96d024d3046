"""Link model - shareable upload links (base, custom, generated)."""
import uuid
from datetime import datetime
from sqlalchemy import String, Text, Integer, BigInteger, Boolean, JSON, ForeignKey, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from foldly.models.base import Base, TimestampMixin


class Link(Base, TimestampMixin):
    __tablename__ = "links"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )

    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    topic: Mapped[str | None] = mapped_column(String(100), nullable=True)  # NULL for base links
    link_type: Mapped[str] = mapped_column(String(20), default="base")
    # 'base' | 'custom' | 'generated'

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Generated links expose a workspace subtree instead of owning folders.
    # Plain column: folders already reference links, a FK back would be a cycle.
    source_folder_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    require_email: Mapped[bool] = mapped_column(Boolean, default=False)
    require_password: Mapped[bool] = mapped_column(Boolean, default=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    max_files: Mapped[int] = mapped_column(Integer, default=100)
    max_file_size: Mapped[int] = mapped_column(BigInteger, default=104857600)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    branding: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_links_slug_topic", "slug", "topic"),
    )
