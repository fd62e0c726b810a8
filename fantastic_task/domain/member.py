"""Family member domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class MemberRole(StrEnum):
    """Member role in the family."""

    ADMIN = "admin"
    MEMBER = "member"
    CHILD = "child"


class Member(BaseModel):
    """Family member data transfer object.

    Members are maintained by the family directory; the task engine only reads
    them and keeps ``points_balance`` in step with the points ledger.
    """

    id: str = Field(..., description="Unique member ID from database")
    family_id: str = Field(..., description="ID of the family the member belongs to")
    name: str = Field(..., description="Display name of the member")
    role: MemberRole = Field(default=MemberRole.MEMBER, description="Member role in the family")
    points_balance: int = Field(default=0, ge=0, description="Denormalized sum of the member's transactions")

    @property
    def is_child(self) -> bool:
        """Children's completions wait for verification before points post."""
        return self.role == MemberRole.CHILD
