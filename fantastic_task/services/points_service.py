"""Points service: transactions and member balances.

Every change to a member's ``points_balance`` goes through a single atomic
``increment_field`` on the store, clamped at zero, so concurrent awards for
the same member cannot lose updates.
"""

import logging
from datetime import datetime

from fantastic_task.core.db_client import RecordNotFoundError, Store, list_all_records, sanitize_param
from fantastic_task.core.errors import ErrorCode, NotFoundError, ValidationError
from fantastic_task.core.logging import span
from fantastic_task.domain.points import PointsTransaction, TransactionType
from fantastic_task.services.member_service import MEMBERS


logger = logging.getLogger(__name__)

TRANSACTIONS = "points_transactions"


class PointsService:
    """Creates points transactions and keeps member balances in step with them."""

    def __init__(self, db: Store) -> None:
        self._db = db

    async def _adjust_balance(self, *, member_id: str, delta: int) -> int:
        try:
            record = await self._db.increment_field(
                collection=MEMBERS,
                record_id=member_id,
                field="points_balance",
                delta=delta,
                minimum=0,
            )
        except RecordNotFoundError as e:
            msg = f"Member not found: {member_id}"
            raise NotFoundError(msg) from e
        return int(record["points_balance"])

    async def get_balance(self, *, member_id: str) -> int:
        """Get a member's current points balance.

        Raises:
            NotFoundError: If the member does not exist
        """
        try:
            record = await self._db.get_record(collection=MEMBERS, record_id=member_id)
        except RecordNotFoundError as e:
            msg = f"Member not found: {member_id}"
            raise NotFoundError(msg) from e
        return int(record.get("points_balance") or 0)

    async def award_points(
        self,
        *,
        member_id: str,
        points: int,
        description: str,
        transaction_type: TransactionType = TransactionType.EARNED,
        completion_id: str | None = None,
        bonus_points: int = 0,
    ) -> PointsTransaction:
        """Record a transaction and add its points to the member's balance.

        Args:
            member_id: Member receiving the points
            points: Signed amount; the balance never drops below zero
            description: Human-readable reason
            transaction_type: earned, spent or adjustment
            completion_id: Completion the points came from, if any
            bonus_points: Portion of points that is overtime bonus

        Returns:
            The created transaction

        Raises:
            NotFoundError: If the member does not exist
        """
        with span("points_service.award_points"):
            # Fail before writing a transaction for a member that does not exist
            await self.get_balance(member_id=member_id)

            record = await self._db.create_record(
                collection=TRANSACTIONS,
                data={
                    "member_id": member_id,
                    "points": points,
                    "bonus_points": max(0, bonus_points),
                    "transaction_type": transaction_type,
                    "description": description,
                    "completion_id": completion_id,
                    "created_at": datetime.now().isoformat(),
                },
            )
            balance = await self._adjust_balance(member_id=member_id, delta=points)

            logger.info(
                "Awarded points",
                extra={"member_id": member_id, "points": points, "completion_id": completion_id, "balance": balance},
            )
            return PointsTransaction(**record)

    async def spend_points(self, *, member_id: str, points: int, description: str) -> PointsTransaction:
        """Deduct points from a member's balance.

        Raises:
            ValidationError: If points is not positive or the balance is too low
            NotFoundError: If the member does not exist
        """
        with span("points_service.spend_points"):
            if points <= 0:
                msg = "Points to spend must be positive"
                raise ValidationError(msg)

            balance = await self.get_balance(member_id=member_id)
            if balance < points:
                msg = f"Insufficient points: balance is {balance}, tried to spend {points}"
                raise ValidationError(msg, code=ErrorCode.ERR_INSUFFICIENT_POINTS)

            record = await self._db.create_record(
                collection=TRANSACTIONS,
                data={
                    "member_id": member_id,
                    "points": -points,
                    "bonus_points": 0,
                    "transaction_type": TransactionType.SPENT,
                    "description": description,
                    "completion_id": None,
                    "created_at": datetime.now().isoformat(),
                },
            )
            await self._adjust_balance(member_id=member_id, delta=-points)

            logger.info("Spent points", extra={"member_id": member_id, "points": points})
            return PointsTransaction(**record)

    async def transactions_for_completion(self, *, completion_id: str) -> list[PointsTransaction]:
        records = await list_all_records(
            self._db,
            collection=TRANSACTIONS,
            filter_query=f'completion_id = "{sanitize_param(completion_id)}"',
        )
        return [PointsTransaction(**record) for record in records]

    async def revoke_completion_points(self, *, completion_id: str) -> int:
        """Delete the transactions of a completion and take their points back.

        Returns:
            Total points removed (before clamping of the balance at zero)
        """
        with span("points_service.revoke_completion_points"):
            removed = 0
            for transaction in await self.transactions_for_completion(completion_id=completion_id):
                await self._db.delete_record(collection=TRANSACTIONS, record_id=transaction.id)
                removed += transaction.points
                try:
                    await self._adjust_balance(member_id=transaction.member_id, delta=-transaction.points)
                except NotFoundError:
                    logger.warning(
                        "Member of revoked transaction no longer exists",
                        extra={"member_id": transaction.member_id, "completion_id": completion_id},
                    )

            if removed:
                logger.info("Revoked completion points", extra={"completion_id": completion_id, "points": removed})
            return removed

    async def transactions_for_member(self, *, member_id: str) -> list[PointsTransaction]:
        """Get a member's transactions, newest first."""
        with span("points_service.transactions_for_member"):
            records = await list_all_records(
                self._db,
                collection=TRANSACTIONS,
                filter_query=f'member_id = "{sanitize_param(member_id)}"',
                sort="-created_at",
            )
            return [PointsTransaction(**record) for record in records]
