from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, func, text
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class PaymentSession(Base):
    __tablename__ = "payment_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    project_id: Mapped[int] = mapped_column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    reward_id: Mapped[int | None] = mapped_column(Integer, ForeignKey('rewards.id', ondelete='SET NULL'))
    anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Written once by the checkout initiator after the gateway accepts the charge.
    gateway: Mapped[str | None] = mapped_column(String(32))
    unique_key: Mapped[str | None] = mapped_column(String(64), unique=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    closed_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), index=True)

    __table_args__ = (
        Index(
            'ux_payment_sessions_active_pledge',
            'user_id',
            'project_id',
            unique=True,
            sqlite_where=text('closed_at IS NULL'),
            postgresql_where=text('closed_at IS NULL'),
        ),
    )

    @property
    def is_bound(self) -> bool:
        return bool(self.unique_key) and bool(self.gateway)
