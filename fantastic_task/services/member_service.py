"""Read access to the family member directory."""

import logging

from fantastic_task.core.db_client import RecordNotFoundError, Store, list_all_records, sanitize_param
from fantastic_task.core.errors import NotFoundError
from fantastic_task.core.logging import span
from fantastic_task.domain.member import Member, MemberRole


logger = logging.getLogger(__name__)

MEMBERS = "members"


class MemberService:
    """Looks up members; the directory itself is maintained elsewhere."""

    def __init__(self, db: Store) -> None:
        self._db = db

    async def get_member(self, *, member_id: str) -> Member:
        """Get a member by ID.

        Raises:
            NotFoundError: If the member does not exist
        """
        with span("member_service.get_member"):
            try:
                record = await self._db.get_record(collection=MEMBERS, record_id=member_id)
            except RecordNotFoundError as e:
                msg = f"Member not found: {member_id}"
                raise NotFoundError(msg) from e
            return Member(**record)

    async def list_members(self, *, family_id: str) -> list[Member]:
        with span("member_service.list_members"):
            records = await list_all_records(
                self._db,
                collection=MEMBERS,
                filter_query=f'family_id = "{sanitize_param(family_id)}"',
            )
            return [Member(**record) for record in records]

    async def child_ids(self) -> set[str]:
        """IDs of every member with the child role."""
        records = await list_all_records(
            self._db,
            collection=MEMBERS,
            filter_query=f'role = "{MemberRole.CHILD}"',
        )
        return {record["id"] for record in records}
