"""Points transaction domain models."""

from enum import StrEnum

from pydantic import BaseModel, Field


class TransactionType(StrEnum):
    """Kind of points movement."""

    EARNED = "earned"
    SPENT = "spent"
    ADJUSTMENT = "adjustment"


class PointsTransaction(BaseModel):
    """Points transaction data transfer object."""

    id: str = Field(..., description="Unique transaction ID from database")
    member_id: str = Field(..., description="ID of the member whose balance changed")
    points: int = Field(..., description="Signed change to the balance")
    bonus_points: int = Field(default=0, ge=0, description="Portion of points that came from overtime bonus")
    transaction_type: TransactionType = Field(..., description="earned, spent or adjustment")
    description: str = Field(default="", description="Human-readable reason")
    completion_id: str | None = Field(default=None, description="Completion that produced the transaction")
    created_at: str | None = Field(default=None, description="Creation timestamp (ISO format)")
