"""Completion ledger: recording, undoing and verifying task completions.

The ledger does not stop a task from being completed twice on the same day.
Callers looking for "the" completion of a date take the latest live one.
"""

import logging
import math
from datetime import datetime
from typing import Any

from fantastic_task.core.db_client import RecordNotFoundError, Store, list_all_records, sanitize_param
from fantastic_task.core.errors import NotFoundError, ValidationError
from fantastic_task.core.logging import span
from fantastic_task.domain.completion import Completion, VerificationStatus, as_local_time
from fantastic_task.domain.points import TransactionType
from fantastic_task.domain.task import OnceRecurrence
from fantastic_task.services.completion_state_machine import ensure_transition
from fantastic_task.services.member_service import MemberService
from fantastic_task.services.points_service import PointsService
from fantastic_task.services.task_service import TaskService


logger = logging.getLogger(__name__)

COMPLETIONS = "task_completions"


def _non_negative_int(value: Any) -> int | None:
    """Parse value as a whole number of at least 0, or return None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value.strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return int(number)


def _clean_id(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _clean_comment(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def _timestamp(value: Any) -> str:
    """Store timestamps as naive local ISO strings so they sort and compare as one series."""
    if value is None or value == "":
        return datetime.now().isoformat()
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value))
        except ValueError as e:
            msg = f"Invalid completed_at timestamp: {value}"
            raise ValidationError(msg) from e
    return as_local_time(value).isoformat()


class CompletionLedger:
    """Append-only store of completions with undo and verification."""

    def __init__(
        self,
        db: Store,
        *,
        points: PointsService | None = None,
        tasks: TaskService | None = None,
        members: MemberService | None = None,
    ) -> None:
        self._db = db
        self._members = members or MemberService(db)
        self._points = points or PointsService(db)
        self._tasks = tasks or TaskService(db, self._members)

    async def record_completion(self, data: dict[str, Any]) -> Completion:
        """Append a completion record.

        Args:
            data: Completion fields. task_id and completed_by are required;
                completed_at is stored as given and defaults to now.

        Returns:
            The stored completion

        Raises:
            ValidationError: If task_id or completed_by is missing, or the
                verification status is not recognised
        """
        with span("completion_ledger.record_completion"):
            task_id = _clean_id(data.get("task_id"))
            completed_by = _clean_id(data.get("completed_by"))
            if not task_id:
                msg = "task_id is required"
                raise ValidationError(msg)
            if not completed_by:
                msg = "completed_by is required"
                raise ValidationError(msg)

            try:
                status = VerificationStatus(data.get("verification_status") or VerificationStatus.NONE_REQUIRED)
            except ValueError as e:
                msg = f"Unknown verification status: {data.get('verification_status')}"
                raise ValidationError(msg) from e

            record = await self._db.create_record(
                collection=COMPLETIONS,
                data={
                    "task_id": task_id,
                    "assignment_id": _clean_id(data.get("assignment_id")),
                    "completed_by": completed_by,
                    "completed_at": _timestamp(data.get("completed_at")),
                    "time_spent_minutes": _non_negative_int(data.get("time_spent_minutes")),
                    "comment": _clean_comment(data.get("comment")),
                    "points_awarded": _non_negative_int(data.get("points_awarded")) or 0,
                    "bonus_points": _non_negative_int(data.get("bonus_points")) or 0,
                    "verification_status": status,
                    "verified_by": None,
                    "verified_at": None,
                    "rejection_reason": None,
                },
            )

            logger.info(
                "Recorded completion",
                extra={"completion_id": record["id"], "task_id": task_id, "member_id": completed_by},
            )
            return Completion(**record)

    async def get_completion(self, *, completion_id: str) -> Completion:
        """Get a completion by ID.

        Raises:
            NotFoundError: If the completion does not exist
        """
        try:
            record = await self._db.get_record(collection=COMPLETIONS, record_id=completion_id)
        except RecordNotFoundError as e:
            msg = f"Completion not found: {completion_id}"
            raise NotFoundError(msg) from e
        return Completion(**record)

    async def _task_title(self, task_id: str) -> str:
        try:
            task = await self._tasks.get_task(task_id=task_id)
        except NotFoundError:
            return f"task {task_id}"
        return task.title

    async def _release(self, completion: Completion) -> None:
        """Reopen what a completion closed: its assignment, and a one-off task."""
        if completion.assignment_id:
            await self._tasks.set_assignment_completed(assignment_id=completion.assignment_id, is_completed=False)

        try:
            task = await self._tasks.get_task(task_id=completion.task_id)
        except NotFoundError:
            return

        if isinstance(task.recurrence, OnceRecurrence) and not task.is_active:
            remaining = await self.completions_for_task(task_id=task.id)
            if not any(c.is_live and c.id != completion.id for c in remaining):
                await self._tasks.set_active(task_id=task.id, is_active=True)

    async def undo(self, *, completion_id: str) -> None:
        """Remove a completion and take back any points it awarded.

        Undo is not idempotent: undoing the same completion twice fails.

        Raises:
            NotFoundError: If the completion does not exist
        """
        with span("completion_ledger.undo"):
            completion = await self.get_completion(completion_id=completion_id)

            removed = await self._points.revoke_completion_points(completion_id=completion_id)
            try:
                await self._db.delete_record(collection=COMPLETIONS, record_id=completion_id)
            except RecordNotFoundError as e:
                msg = f"Completion not found: {completion_id}"
                raise NotFoundError(msg) from e

            await self._release(completion)
            logger.info(
                "Undid completion",
                extra={"completion_id": completion_id, "task_id": completion.task_id, "points_removed": removed},
            )

    async def approve(self, *, completion_id: str, verifier_id: str) -> Completion:
        """Approve a pending completion and post its points.

        Approving an approved or adult completion changes nothing, and points
        are never posted twice for one completion.

        Raises:
            NotFoundError: If the completion does not exist
            ValidationError: If the completion was rejected
        """
        with span("completion_ledger.approve"):
            completion = await self.get_completion(completion_id=completion_id)

            if completion.verification_status in {VerificationStatus.APPROVED, VerificationStatus.NONE_REQUIRED}:
                logger.info(
                    "Completion already approved, nothing to do",
                    extra={"completion_id": completion_id, "status": completion.verification_status},
                )
                return completion

            ensure_transition(
                completion_id=completion_id,
                current=completion.verification_status,
                target=VerificationStatus.APPROVED,
            )

            existing = await self._points.transactions_for_completion(completion_id=completion_id)
            if not existing and completion.points_awarded > 0:
                title = await self._task_title(completion.task_id)
                await self._points.award_points(
                    member_id=completion.completed_by,
                    points=completion.points_awarded,
                    description=f"Completed: {title}",
                    transaction_type=TransactionType.EARNED,
                    completion_id=completion_id,
                    bonus_points=completion.bonus_points,
                )

            record = await self._db.update_record(
                collection=COMPLETIONS,
                record_id=completion_id,
                data={
                    "verification_status": VerificationStatus.APPROVED,
                    "verified_by": verifier_id,
                    "verified_at": datetime.now().isoformat(),
                },
            )

            logger.info("Approved completion", extra={"completion_id": completion_id, "verifier_id": verifier_id})
            return Completion(**record)

    async def reject(self, *, completion_id: str, verifier_id: str, reason: str | None = None) -> Completion:
        """Reject a pending completion; no points are posted and the task reopens.

        Raises:
            NotFoundError: If the completion does not exist
            ValidationError: If the completion is not pending
        """
        with span("completion_ledger.reject"):
            completion = await self.get_completion(completion_id=completion_id)
            ensure_transition(
                completion_id=completion_id,
                current=completion.verification_status,
                target=VerificationStatus.REJECTED,
            )

            record = await self._db.update_record(
                collection=COMPLETIONS,
                record_id=completion_id,
                data={
                    "verification_status": VerificationStatus.REJECTED,
                    "verified_by": verifier_id,
                    "verified_at": datetime.now().isoformat(),
                    "rejection_reason": _clean_comment(reason),
                },
            )
            rejected = Completion(**record)
            await self._release(rejected)

            logger.info("Rejected completion", extra={"completion_id": completion_id, "verifier_id": verifier_id})
            return rejected

    async def list_completions(self, *, filter_query: str = "") -> list[Completion]:
        """List completions, newest first."""
        records = await list_all_records(
            self._db,
            collection=COMPLETIONS,
            filter_query=filter_query,
            sort="-completed_at",
        )
        return [Completion(**record) for record in records]

    async def completions_for_task(self, *, task_id: str) -> list[Completion]:
        return await self.list_completions(filter_query=f'task_id = "{sanitize_param(task_id)}"')

    async def completions_for_tasks(self, *, task_ids: set[str]) -> dict[str, list[Completion]]:
        """Completions of each given task, newest first, keyed by task ID."""
        return {task_id: await self.completions_for_task(task_id=task_id) for task_id in sorted(task_ids)}

    async def completions_by_member(self, *, member_id: str) -> list[Completion]:
        return await self.list_completions(filter_query=f'completed_by = "{sanitize_param(member_id)}"')

    async def pending_verifications(self) -> list[Completion]:
        """Completions not yet verified that were done by a child.

        Adult completions are never pending, whatever their verified_by.
        """
        with span("completion_ledger.pending_verifications"):
            child_ids = await self._members.child_ids()
            pending: list[Completion] = []
            for child_id in sorted(child_ids):
                completions = await self.list_completions(
                    filter_query=(
                        f'completed_by = "{sanitize_param(child_id)}"'
                        f' && verification_status != "{VerificationStatus.REJECTED}"'
                    ),
                )
                pending.extend(c for c in completions if c.verified_by is None)
            return sorted(pending, key=lambda c: c.completed_at, reverse=True)
