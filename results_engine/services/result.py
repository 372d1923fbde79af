"""Result writes: single entry, batch, workbook upload and delete."""

import logging
from io import BytesIO
from typing import Any

from openpyxl import load_workbook
from sqlalchemy import select
from sqlalchemy.orm import Session

from results_engine.core.config import settings
from results_engine.core.database import atomic_write
from results_engine.core.dependencies import ActorContext
from results_engine.core.exceptions import (
    AppException,
    NotEligibleError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from results_engine.core.locks import KeyedLockRegistry, result_locks
from results_engine.models.history import ChangeType
from results_engine.models.result import ALevelResult, ResultModel
from results_engine.models.student import Student
from results_engine.models.subject import Curriculum
from results_engine.schemas.common import ValidationWarning
from results_engine.schemas.grading import GradingPolicy
from results_engine.schemas.result import (
    BulkMarksRequest,
    BulkMarksResponse,
    MarkEntryOutcome,
    RecordMarkRequest,
    ResultResponse,
)
from results_engine.services.catalog import get_exam, get_student, get_subject, load_subject_catalog
from results_engine.services.eligibility import (
    CombinationEligibilityResolver,
    StudentProfile,
    SubjectProfile,
)
from results_engine.services.grading import GradeCalculator, validate_marks
from results_engine.services.history import (
    MarksHistoryService,
    Result,
    find_result_for_update,
    result_lock_key,
)

logger = logging.getLogger(__name__)

TRUE_WORDS = {"yes", "y", "true", "1", "p", "principal"}
FALSE_WORDS = {"no", "n", "false", "0", "s", "subsidiary"}


def clean_cell(value: Any) -> Any:
    """Strip text cells to None when blank; whole-number floats become ints."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    # Numeric admission numbers come back as 1001.0
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class ResultService:
    """Records marks; every change lands with its ledger row in one commit."""

    def __init__(
        self,
        db: Session,
        policy: GradingPolicy,
        eligibility_mode: str | None = None,
        locks: KeyedLockRegistry | None = None,
    ):
        self.db = db
        self.calculator = GradeCalculator(policy)
        self.resolver = CombinationEligibilityResolver()
        self.locks = locks if locks is not None else result_locks
        self.history = MarksHistoryService(db, policy, self.locks)
        self.eligibility_mode = eligibility_mode or settings.ELIGIBILITY_MODE

    # ==========================================
    # Single entry
    # ==========================================

    def record_mark(self, request: RecordMarkRequest, actor: ActorContext) -> ResultResponse:
        """Create or update the result for (student, subject, exam)."""
        result, warnings = self._record(request, actor)
        return self.to_response(result, warnings)

    def _record(
        self,
        request: RecordMarkRequest,
        actor: ActorContext,
    ) -> tuple[Result, list[ValidationWarning]]:
        # Everything that can be rejected is checked before any write
        marks = validate_marks(request.marks_obtained)
        student = get_student(self.db, request.student_id)
        subject = get_subject(self.db, request.subject_id)
        exam = get_exam(self.db, request.exam_id)

        curriculum = student.education_level
        warnings: list[ValidationWarning] = []
        eligibility = self.resolver.resolve(
            StudentProfile.from_model(student),
            SubjectProfile.from_model(subject),
        )
        flagged = False
        if not eligibility.eligible:
            if self.eligibility_mode != "lenient":
                raise NotEligibleError(student.id, subject.id, eligibility.reason)
            flagged = True
            warnings.append(ValidationWarning(
                code="NOT_ELIGIBLE",
                message=eligibility.reason,
                details={"student_id": student.id, "subject_id": subject.id},
            ))

        band = self.calculator.band(marks, curriculum)
        result_model = ResultModel.for_curriculum(curriculum)
        model = result_model.model_class
        key = result_lock_key(result_model, student.id, subject.id, exam.id)

        with self.locks.hold(key):
            with atomic_write(self.db, f"mark entry {key}"):
                result = find_result_for_update(
                    self.db,
                    model,
                    student_id=student.id,
                    subject_id=subject.id,
                    exam_id=exam.id,
                )
                previous = result.snapshot() if result is not None else None
                if result is None:
                    result = model(student_id=student.id, subject_id=subject.id, exam_id=exam.id)
                    self.db.add(result)
                    change = ChangeType.CREATE
                else:
                    change = ChangeType.UPDATE

                result.class_id = student.class_id
                result.marks_obtained = marks
                result.grade = band.grade
                result.points = band.points
                result.flagged_ineligible = flagged
                # Omitted fields keep what is stored; an empty comment clears it
                if request.comment is not None:
                    result.comment = request.comment or None
                if isinstance(result, ALevelResult):
                    if request.is_principal is not None:
                        result.is_principal = request.is_principal
                    elif change is ChangeType.CREATE:
                        result.is_principal = bool(self.resolver.effective_is_principal(eligibility, None))
                self.db.flush()
                self.history.append(result, change, previous, result.snapshot(), actor)

        logger.info(
            f"{change.value} {result_model.value}#{result.id} student={student.admission_number} "
            f"subject={subject.code} exam={exam.id} marks={marks} grade={band.grade} by user {actor.user_id}"
        )
        return result, warnings

    # ==========================================
    # Batch entry
    # ==========================================

    def bulk_record_marks(self, request: BulkMarksRequest, actor: ActorContext) -> BulkMarksResponse:
        """Record each entry independently; one bad row does not stop the rest."""
        rows = list(enumerate(request.entries, start=1))
        return self._run_batch(rows, actor, [])

    def _run_batch(
        self,
        rows: list[tuple[int, RecordMarkRequest]],
        actor: ActorContext,
        rejected: list[MarkEntryOutcome],
    ) -> BulkMarksResponse:
        outcomes = list(rejected)
        for row_num, entry in rows:
            try:
                result, warnings = self._record(entry, actor)
            except AppException as e:
                # A store failure only loses its own row
                if isinstance(e, PersistenceError):
                    logger.error(f"Batch row {row_num} not stored: {e.message}")
                else:
                    logger.warning(f"Batch row {row_num} rejected: {e.code} {e.message}")
                outcomes.append(MarkEntryOutcome(
                    row=row_num,
                    status="rejected",
                    student_id=entry.student_id,
                    subject_id=entry.subject_id,
                    error_code=e.code,
                    message=e.message,
                ))
                continue
            outcomes.append(MarkEntryOutcome(
                row=row_num,
                status="flagged" if result.flagged_ineligible else "saved",
                student_id=result.student_id,
                subject_id=result.subject_id,
                result_id=result.id,
                grade=result.grade,
                points=result.points,
                message="; ".join(w.message for w in warnings) or None,
            ))

        outcomes.sort(key=lambda o: o.row)
        response = BulkMarksResponse(
            total=len(outcomes),
            saved=sum(1 for o in outcomes if o.status == "saved"),
            rejected=sum(1 for o in outcomes if o.status == "rejected"),
            flagged=sum(1 for o in outcomes if o.status == "flagged"),
            rows=outcomes,
        )
        logger.info(
            f"Batch completed: {response.saved} saved, {response.flagged} flagged, "
            f"{response.rejected} rejected"
        )
        return response

    # ==========================================
    # Workbook upload
    # ==========================================

    def parse_marks_workbook(
        self,
        file_content: bytes,
        exam_id: int,
    ) -> tuple[list[tuple[int, RecordMarkRequest]], list[MarkEntryOutcome]]:
        """Turn workbook rows into mark entries plus rows rejected while parsing."""
        try:
            wb = load_workbook(BytesIO(file_content), read_only=True, data_only=True)
            ws = wb.active
        except Exception as e:
            logger.error(f"[MARKS UPLOAD] Failed to load Excel: {e}")
            raise ValidationError(f"Invalid Excel file: {e}")

        rows_iter = ws.iter_rows(values_only=True)
        header_row = next(rows_iter, None) or ()
        headers = [str(h).strip().lower() if h is not None else "" for h in header_row]

        col_map: dict[str, int | None] = {
            "admission": None,
            "subject": None,
            "marks": None,
            "comment": None,
            "principal": None,
        }
        for idx, header in enumerate(headers):
            if "admission" in header:
                col_map["admission"] = idx
            elif "subject" in header:
                col_map["subject"] = idx
            elif "mark" in header:
                col_map["marks"] = idx
            elif "comment" in header or "remark" in header:
                col_map["comment"] = idx
            elif "principal" in header:
                col_map["principal"] = idx

        missing = [name for name in ("admission", "subject", "marks") if col_map[name] is None]
        if missing:
            raise ValidationError(
                "Workbook is missing required columns",
                details={"missing": missing, "headers": headers},
            )
        logger.info(f"[MARKS UPLOAD] Column mapping: {col_map}")

        students = {
            s.admission_number.strip().lower(): s
            for s in self.db.execute(select(Student)).scalars().all()
        }
        catalog = load_subject_catalog(self.db)

        def cell(row: tuple, name: str) -> Any:
            idx = col_map[name]
            if idx is None or idx >= len(row):
                return None
            return clean_cell(row[idx])

        entries: list[tuple[int, RecordMarkRequest]] = []
        rejected: list[MarkEntryOutcome] = []

        for row_num, row in enumerate(rows_iter, start=2):
            if not any(v not in (None, "") for v in row):
                continue

            admission = cell(row, "admission")
            subject_label = cell(row, "subject")
            marks = cell(row, "marks")

            def reject(message: str, code: str = "VALIDATION_ERROR") -> None:
                rejected.append(MarkEntryOutcome(row=row_num, status="rejected", error_code=code, message=message))

            if admission is None:
                reject("Admission number is required")
                continue
            student = students.get(str(admission).lower())
            if student is None:
                reject(f"Student '{admission}' not found", code="NOT_FOUND")
                continue
            if subject_label is None:
                reject("Subject is required")
                continue
            subject = catalog.lookup(subject_label)
            if subject is None:
                reject(f"Subject '{subject_label}' not found", code="NOT_FOUND")
                continue
            if marks is None:
                reject("Marks are required")
                continue

            principal_raw = cell(row, "principal")
            is_principal = None
            if principal_raw is not None:
                word = str(principal_raw).strip().lower()
                if word in TRUE_WORDS:
                    is_principal = True
                elif word in FALSE_WORDS:
                    is_principal = False
                else:
                    reject(f"Principal must be yes or no, got '{principal_raw}'")
                    continue

            comment = cell(row, "comment")
            entries.append((row_num, RecordMarkRequest(
                student_id=student.id,
                subject_id=subject.id,
                exam_id=exam_id,
                marks_obtained=marks,
                comment=str(comment) if comment is not None else None,
                is_principal=is_principal,
            )))

        wb.close()
        logger.info(f"[MARKS UPLOAD] Parsed {len(entries)} rows, {len(rejected)} rejected while parsing")
        return entries, rejected

    def process_workbook_upload(
        self,
        file_content: bytes,
        exam_id: int,
        actor: ActorContext,
    ) -> BulkMarksResponse:
        get_exam(self.db, exam_id)
        entries, rejected = self.parse_marks_workbook(file_content, exam_id)
        return self._run_batch(entries, actor, rejected)

    # ==========================================
    # Read / delete
    # ==========================================

    def get_result(self, result_model: ResultModel, result_id: int) -> Result:
        result = self.db.get(result_model.model_class, result_id)
        if not result:
            raise NotFoundError(f"{result_model.value}", str(result_id))
        return result

    def delete_result(
        self,
        result_model: ResultModel,
        result_id: int,
        actor: ActorContext,
        reason: str | None = None,
    ) -> None:
        """Remove a result; the ledger keeps its last state for revert."""
        found = self.get_result(result_model, result_id)
        key = result_lock_key(result_model, found.student_id, found.subject_id, found.exam_id)

        with self.locks.hold(key):
            with atomic_write(self.db, f"delete of {result_model.value}#{result_id}"):
                result = find_result_for_update(self.db, result_model.model_class, id=result_id)
                if result is None:
                    raise NotFoundError(f"{result_model.value}", str(result_id))
                self.history.append(result, ChangeType.DELETE, result.snapshot(), None, actor, reason=reason)
                self.db.delete(result)
                self.db.flush()

        logger.info(f"Deleted {result_model.value}#{result_id} by user {actor.user_id}")

    def to_response(self, result: Result, warnings: list[ValidationWarning] | None = None) -> ResultResponse:
        curriculum: Curriculum = result.result_model.curriculum
        band = self.calculator.band(result.marks_obtained, curriculum)
        return ResultResponse(
            id=result.id,
            result_model=result.result_model,
            student_id=result.student_id,
            subject_id=result.subject_id,
            exam_id=result.exam_id,
            class_id=result.class_id,
            marks_obtained=result.marks_obtained,
            grade=band.grade,
            points=band.points,
            remark=band.remark,
            comment=result.comment,
            is_principal=result.is_principal if isinstance(result, ALevelResult) else None,
            flagged_ineligible=result.flagged_ineligible,
            version=result.version,
            created_at=result.created_at,
            updated_at=result.updated_at,
            warnings=warnings or [],
        )
