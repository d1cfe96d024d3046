"""Storage quota checks and storage-usage accounting."""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from foldly.models.user import User
from foldly.services.errors import CopyError, ErrorCode, QuotaExceededError

logger = logging.getLogger(__name__)


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if abs(value) < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


@dataclass
class QuotaCheckResult:
    allowed: bool
    storage_used: int
    storage_limit: int
    available_space: int
    usage_percentage: float
    message: Optional[str] = None


class StorageQuotaService:
    """Reads and updates the per-user storage counter.

    Both methods run on the caller's session so they take part in the
    caller's transaction.
    """

    async def _get_user(self, db: AsyncSession, user_id: uuid.UUID, *, lock: bool = False) -> User:
        query = select(User).where(User.id == user_id)
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        user = result.scalar_one_or_none()
        if not user:
            raise CopyError(ErrorCode.NOT_FOUND, f"User {user_id} not found")
        return user

    @staticmethod
    def _evaluate(user: User, additional_bytes: int) -> QuotaCheckResult:
        used = user.storage_used or 0
        limit = user.storage_limit
        available = max(limit - used, 0)
        usage = (used / limit) * 100 if limit else 100.0

        message = None
        allowed = True
        if additional_bytes < 0:
            allowed = False
            message = "Invalid size: additional bytes must not be negative."
        elif used + additional_bytes > limit:
            allowed = False
            message = (
                f"Storage limit reached. You've used {format_bytes(used)} of "
                f"{format_bytes(limit)} and need {format_bytes(additional_bytes)} more."
            )
        return QuotaCheckResult(
            allowed=allowed,
            storage_used=used,
            storage_limit=limit,
            available_space=available,
            usage_percentage=round(usage, 2),
            message=message,
        )

    async def check_user_quota(
        self, db: AsyncSession, user_id: uuid.UUID, additional_bytes: int
    ) -> QuotaCheckResult:
        """Would adding `additional_bytes` keep the user within their limit?"""
        user = await self._get_user(db, user_id)
        result = self._evaluate(user, additional_bytes)
        if not result.allowed:
            logger.info(f"Quota check denied for user {user_id}: {result.message}")
        return result

    async def update_user_storage_usage(
        self, db: AsyncSession, user_id: uuid.UUID, bytes_added: int
    ) -> None:
        """Add `bytes_added` to the user's storage counter.

        Locks the user row and re-validates the limit first; raises
        QuotaExceededError so the enclosing transaction rolls back.
        """
        if bytes_added == 0:
            return
        user = await self._get_user(db, user_id, lock=True)
        if bytes_added > 0:
            check = self._evaluate(user, bytes_added)
            if not check.allowed:
                logger.warning(f"Storage update rejected for user {user_id}: {check.message}")
                raise QuotaExceededError(check.message)

        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(storage_used=User.storage_used + bytes_added)
        )
        logger.info(f"Storage usage for user {user_id} changed by {bytes_added} bytes")
