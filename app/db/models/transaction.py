import uuid
from decimal import Decimal
from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, JSON, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    txn_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    investor_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    project_id: Mapped[int] = mapped_column(Integer, ForeignKey('projects.id', ondelete='RESTRICT'), nullable=False, index=True)
    reward_id: Mapped[int | None] = mapped_column(Integer, ForeignKey('rewards.id', ondelete='SET NULL'))
    receiver_id: Mapped[int | None] = mapped_column(Integer, index=True)
    txn_amount: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)
    txn_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    txn_status: Mapped[str] = mapped_column(String(16), nullable=False, default='pending', index=True)
    txn_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True))
    service_provider: Mapped[str] = mapped_column(String(32), nullable=False)
    service_alias: Mapped[str] = mapped_column(String(32), nullable=False)
    extra_data: Mapped[dict | None] = mapped_column(JSON)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("txn_status IN ('pending', 'completed', 'failed')", name='chk_transaction_status'),
        CheckConstraint('txn_amount >= 0', name='chk_transaction_amount_positive'),
    )
