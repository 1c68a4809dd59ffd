"""SQLAlchemy models for per-user access and quota state."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatebot.db.base import Base, TimestampMixin


class UserAccount(TimestampMixin, Base):
    __tablename__ = "user_accounts"
    __table_args__ = (UniqueConstraint("chat_id", name="uq_user_accounts_chat_id"),)

    # Telegram ids exceed 32 bits and channel ids are negative; keep them opaque.
    chat_id: Mapped[str] = mapped_column(String(32), nullable=False)
    approved_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    messages: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    requests_today: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reset_date: Mapped[date | None] = mapped_column(Date)
    tokens_used_today: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    token_reset_date: Mapped[date | None] = mapped_column(Date)
    selected_model: Mapped[str | None] = mapped_column(String(64))
    language_code: Mapped[str | None] = mapped_column(String(8))

    feature_usage: Mapped[list["DailyFeatureUsage"]] = relationship(
        back_populates="account",
        cascade="all, delete-orphan",
    )


class DailyFeatureUsage(TimestampMixin, Base):
    __tablename__ = "daily_feature_usage"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "usage_date", "feature", name="uq_daily_feature_usage_account_day_feature"
        ),
    )

    account_id: Mapped[int] = mapped_column(ForeignKey("user_accounts.id", ondelete="CASCADE"))
    usage_date: Mapped[date] = mapped_column(Date, nullable=False)
    feature: Mapped[str] = mapped_column(String(32), nullable=False)
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    account: Mapped[UserAccount] = relationship(back_populates="feature_usage")


__all__ = ["DailyFeatureUsage", "UserAccount"]
