"""User model - account record holding the storage quota counters."""
import uuid
from sqlalchemy import String, BigInteger
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from foldly.config import settings
from foldly.models.base import Base, TimestampMixin


def plan_storage_limit(tier: str | None) -> int:
    """Byte limit for a subscription tier; unknown tiers get the default."""
    return settings.PLAN_STORAGE_LIMITS.get(tier or "", settings.DEFAULT_STORAGE_LIMIT)


def _default_storage_limit(context) -> int:
    return plan_storage_limit(context.get_current_parameters().get("subscription_tier"))


class User(Base, TimestampMixin):
    __tablename__ = "users"

    # Stable id issued by the identity provider
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    subscription_tier: Mapped[str] = mapped_column(String(20), default="free")
    storage_used: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    storage_limit: Mapped[int] = mapped_column(BigInteger, default=_default_storage_limit, nullable=False)
