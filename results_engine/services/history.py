"""Marks history ledger: append, query and revert."""

import logging
import math
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from results_engine.core.database import atomic_write
from results_engine.core.dependencies import ActorContext
from results_engine.core.exceptions import NotFoundError, ValidationError
from results_engine.core.locks import KeyedLockRegistry, result_locks
from results_engine.models.history import ChangeType, MarksHistory
from results_engine.models.result import ALevelResult, OLevelResult, ResultModel
from results_engine.schemas.grading import GradingPolicy
from results_engine.schemas.history import HistoryFilter
from results_engine.services.grading import GradeCalculator, validate_marks

logger = logging.getLogger(__name__)

Result = OLevelResult | ALevelResult


def result_lock_key(result_model: ResultModel, student_id: int, subject_id: int, exam_id: int) -> tuple:
    return (result_model.value, student_id, subject_id, exam_id)


def find_result_for_update(db: Session, model: type[Result], **criteria: Any) -> Result | None:
    """Fetch a result row, locking it where the database supports row locks."""
    query = select(model).filter_by(**criteria).with_for_update().execution_options(populate_existing=True)
    return db.execute(query).scalar_one_or_none()


def apply_snapshot(result: Result, snapshot: dict[str, Any], calculator: GradeCalculator) -> None:
    """Restore snapshot fields onto a result; grade and points are recomputed."""
    marks = validate_marks(snapshot.get("marks_obtained"))
    band = calculator.band(marks, result.result_model.curriculum)
    result.marks_obtained = marks
    result.grade = band.grade
    result.points = band.points
    result.comment = snapshot.get("comment")
    result.flagged_ineligible = bool(snapshot.get("flagged_ineligible", False))
    if isinstance(result, ALevelResult):
        result.is_principal = bool(snapshot.get("is_principal", False))


class MarksHistoryService:
    """Append-only ledger of result changes."""

    def __init__(
        self,
        db: Session,
        policy: GradingPolicy,
        locks: KeyedLockRegistry | None = None,
    ):
        self.db = db
        self.calculator = GradeCalculator(policy)
        self.locks = locks if locks is not None else result_locks

    def next_sequence(self, result_model: ResultModel, result_id: int) -> int:
        current = self.db.execute(
            select(func.max(MarksHistory.sequence)).where(
                MarksHistory.result_model == result_model,
                MarksHistory.result_id == result_id,
            )
        ).scalar()
        return (current or 0) + 1

    def append(
        self,
        result: Result,
        change_type: ChangeType,
        previous_values: dict[str, Any] | None,
        new_values: dict[str, Any] | None,
        actor: ActorContext,
        reason: str | None = None,
        reverted_from_id: int | None = None,
    ) -> MarksHistory:
        """Add one ledger row for a change to ``result``. The caller commits."""
        entry = MarksHistory(
            result_id=result.id,
            result_model=result.result_model,
            sequence=self.next_sequence(result.result_model, result.id),
            student_id=result.student_id,
            subject_id=result.subject_id,
            exam_id=result.exam_id,
            class_id=result.class_id,
            change_type=change_type,
            previous_values=previous_values,
            new_values=new_values,
            user_id=actor.user_id,
            reason=reason,
            reverted_from_id=reverted_from_id,
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def get_entry(self, history_id: int) -> MarksHistory:
        entry = self.db.get(MarksHistory, history_id)
        if not entry:
            raise NotFoundError("History entry", str(history_id))
        return entry

    def get_history(
        self,
        filters: HistoryFilter,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[MarksHistory], int]:
        """List ledger rows, newest first."""
        if not any(
            v is not None
            for v in (filters.result_id, filters.student_id, filters.subject_id, filters.exam_id)
        ):
            raise ValidationError(
                "At least one of result_id, student_id, subject_id or exam_id is required"
            )
        if filters.result_id is not None and filters.result_model is None:
            raise ValidationError(
                "result_model is required when filtering by result_id",
                details={"result_id": filters.result_id},
            )

        query = select(MarksHistory)
        if filters.result_id is not None:
            query = query.where(MarksHistory.result_id == filters.result_id)
        if filters.result_model is not None:
            query = query.where(MarksHistory.result_model == filters.result_model)
        if filters.student_id is not None:
            query = query.where(MarksHistory.student_id == filters.student_id)
        if filters.subject_id is not None:
            query = query.where(MarksHistory.subject_id == filters.subject_id)
        if filters.exam_id is not None:
            query = query.where(MarksHistory.exam_id == filters.exam_id)
        if filters.class_id is not None:
            query = query.where(MarksHistory.class_id == filters.class_id)
        if filters.change_type is not None:
            query = query.where(MarksHistory.change_type == filters.change_type)
        if filters.date_from:
            query = query.where(MarksHistory.created_at >= filters.date_from)
        if filters.date_to:
            query = query.where(MarksHistory.created_at <= filters.date_to)

        count_query = select(func.count()).select_from(query.subquery())
        total = self.db.execute(count_query).scalar() or 0

        query = query.order_by(MarksHistory.created_at.desc(), MarksHistory.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        entries = list(self.db.execute(query).scalars().all())
        return entries, total

    @staticmethod
    def total_pages(total: int, page_size: int) -> int:
        return math.ceil(total / page_size) if total > 0 else 0

    def revert(
        self,
        history_id: int,
        actor: ActorContext,
        reason: str | None = None,
    ) -> Result:
        """Restore the state captured by a ledger row as a new change.

        A live result is updated in place; a deleted one is recreated under
        its original id. Earlier ledger rows are never touched.
        """
        target = self.get_entry(history_id)
        snapshot = target.restorable_values
        if not snapshot:
            raise ValidationError(
                "History entry has no state to restore",
                details={"history_id": history_id},
            )
        # Reject a bad snapshot before taking the lock
        validate_marks(snapshot.get("marks_obtained"))

        model = target.result_model.model_class
        key = result_lock_key(target.result_model, target.student_id, target.subject_id, target.exam_id)

        with self.locks.hold(key):
            with atomic_write(self.db, f"revert of history entry {history_id}"):
                result = find_result_for_update(self.db, model, id=target.result_id)
                if result is None:
                    # Same cell may have been recreated under a new id since the delete
                    result = find_result_for_update(
                        self.db,
                        model,
                        student_id=target.student_id,
                        subject_id=target.subject_id,
                        exam_id=target.exam_id,
                    )

                if result is None:
                    result = model(
                        id=target.result_id,
                        student_id=target.student_id,
                        subject_id=target.subject_id,
                        exam_id=target.exam_id,
                        class_id=target.class_id,
                    )
                    apply_snapshot(result, snapshot, self.calculator)
                    self.db.add(result)
                    self.db.flush()
                    self.append(
                        result,
                        ChangeType.CREATE,
                        None,
                        result.snapshot(),
                        actor,
                        reason=reason,
                        reverted_from_id=target.id,
                    )
                    change = ChangeType.CREATE
                else:
                    previous = result.snapshot()
                    apply_snapshot(result, snapshot, self.calculator)
                    self.db.flush()
                    self.append(
                        result,
                        ChangeType.UPDATE,
                        previous,
                        result.snapshot(),
                        actor,
                        reason=reason,
                        reverted_from_id=target.id,
                    )
                    change = ChangeType.UPDATE

        logger.info(
            f"Reverted {target.result_model.value}#{result.id} to history entry {history_id} "
            f"({change.value}) by user {actor.user_id}"
        )
        return result
