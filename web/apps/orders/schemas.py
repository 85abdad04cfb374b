"""Pydantic schemas for orders.

This module exposes the request/validation schema for checkout initiation
and the read schema used by the admin listing. Field aliases follow the
camelCase names of the public API.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import Order

PRODUCT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CreateCheckoutDTO(BaseModel):
    """Schema for the create-checkout-session body.

    Attributes:
        product_id: Optional product identifier (``productId``).
        buyer_email: Optional buyer contact (``buyerEmail``). Blank values
            are treated as absent; others must look like an email address.
    """

    model_config = ConfigDict(populate_by_name=True)

    product_id: Optional[str] = Field(default=None, alias="productId")
    buyer_email: Optional[str] = Field(default=None, alias="buyerEmail", max_length=254)

    @field_validator("product_id")
    @classmethod
    def validate_product_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not PRODUCT_ID_RE.match(v):
            raise ValueError("Invalid productId format")
        return v

    @field_validator("buyer_email")
    @classmethod
    def validate_buyer_email(cls, v: Optional[str]) -> Optional[str]:
        """Normalize the email to stripped lowercase, or None when blank.

        Raises:
            ValueError: When a non-blank value is not an email address.
        """
        if v is None or not v.strip():
            return None
        v2 = v.strip().lower()
        if not EMAIL_RE.match(v2):
            raise ValueError("Invalid buyerEmail")
        return v2


class OrderReadDTO(BaseModel):
    """Read model of an order as exposed by the admin listing."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: str
    product_id: str = Field(alias="productId")
    email: Optional[str] = None
    payment_session_id: Optional[str] = Field(default=None, alias="paymentSessionId")
    download_path: Optional[str] = Field(default=None, alias="downloadPath")
    failure_stage: Optional[str] = Field(default=None, alias="failureStage")
    failure_reason: Optional[str] = Field(default=None, alias="failureReason")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_order(cls, order: Order) -> "OrderReadDTO":
        return cls(
            id=order.id,
            status=order.status.value,
            product_id=order.product_id,
            email=order.email,
            payment_session_id=order.payment_session_id,
            download_path=order.download_path,
            failure_stage=order.failure_stage,
            failure_reason=order.failure_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
