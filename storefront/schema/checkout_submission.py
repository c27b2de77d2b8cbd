import enum
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import JSON, BigInteger, DateTime, Integer, Uuid
from sqlmodel import Column, Field, SQLModel, String
from uuid6 import uuid7
from storefront.common.utils import now


class SubmissionStatus(enum.IntEnum):
    PENDING = 0
    SESSION_CREATED = 10     # gateway session handed to the client, awaiting return
    PLACED = 20              # cod order created
    PAID = 30                # gateway payment verified
    FAILED = 40


# one row per checkout submission , order_reference doubles as the gateway order id
class CheckoutSubmission(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False))
    order_reference: str = Field(sa_column=Column(String(64), unique=True, nullable=False, index=True))
    user_id: int = Field(sa_column=Column(Integer, nullable=False, index=True))
    payment_method: str = Field(sa_column=Column(String(16), nullable=False))
    amount: int = Field(sa_column=Column(BigInteger, nullable=False))   # whole rupees
    currency: str = Field(default="INR", sa_column=Column(String(8), nullable=False, default="INR"))
    status: int = Field(default=SubmissionStatus.PENDING.value, sa_column=Column(Integer, nullable=False, index=True))
    is_multi_address: bool = Field(default=False)

    payment_session_id: Optional[str] = Field(default=None, sa_column=Column(String(256), nullable=True))
    gateway_environment: Optional[str] = Field(default=None, sa_column=Column(String(16), nullable=True))
    server_order_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, index=True))
    order_data: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    last_error: Optional[str] = Field(default=None, sa_column=Column(String(512), nullable=True))

    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))
