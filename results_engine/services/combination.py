"""Subject combination ingestion and assignment."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from results_engine.core.exceptions import NotFoundError, ValidationError
from results_engine.models.subject import (
    CombinationRole,
    CombinationSubject,
    Curriculum,
    SubjectCombination,
)
from results_engine.schemas.combination import (
    CombinationMember,
    CombinationPayload,
    CombinationResponse,
    StudentCombinationResponse,
)
from results_engine.services.catalog import SubjectCatalog, get_student, load_subject_catalog

logger = logging.getLogger(__name__)

PRINCIPAL_KEYS = ("principal_subjects", "principalSubjects", "subjects")
SUBSIDIARY_KEYS = (
    "subsidiary_subjects",
    "subsidiarySubjects",
    "compulsory_subjects",
    "compulsorySubjects",
)


# ==========================================
# Normalizer
# ==========================================

@dataclass(frozen=True)
class NormalizedCombination:
    code: str
    name: str
    description: str | None
    principal_subject_ids: tuple[int, ...]
    subsidiary_subject_ids: tuple[int, ...]


def _pick_list(payload: dict[str, Any], keys: tuple[str, ...]) -> tuple[str | None, list[Any]]:
    for key in keys:
        if key in payload and payload[key] is not None:
            value = payload[key]
            if not isinstance(value, list | tuple):
                raise ValidationError(f"'{key}' must be a list of subjects", details={"field": key})
            return key, list(value)
    return None, []


def normalize_combination(payload: dict[str, Any], catalog: SubjectCatalog) -> NormalizedCombination:
    """Map an upstream combination payload to canonical subject id lists."""
    errors: list[dict[str, Any]] = []
    resolved: dict[str, list[int]] = {}

    for role, keys in (("principal", PRINCIPAL_KEYS), ("subsidiary", SUBSIDIARY_KEYS)):
        key, entries = _pick_list(payload, keys)
        ids: list[int] = []
        for index, entry in enumerate(entries):
            subject = catalog.lookup(entry)
            if subject is None:
                errors.append({"field": key, "index": index, "entry": repr(entry), "error": "unknown subject"})
                continue
            if not subject.education_level.offered_for(Curriculum.A_LEVEL):
                errors.append({"field": key, "index": index, "entry": subject.code, "error": "not an A-Level subject"})
                continue
            if subject.id not in ids:
                ids.append(subject.id)
        resolved[role] = ids

    principal, subsidiary = resolved["principal"], resolved["subsidiary"]
    for subject_id in sorted(set(principal) & set(subsidiary)):
        errors.append({
            "entry": catalog.by_id[subject_id].code,
            "error": "subject is listed as both principal and subsidiary",
        })
    if not principal and not errors:
        errors.append({"field": PRINCIPAL_KEYS[0], "error": "at least one principal subject is required"})

    if errors:
        raise ValidationError("Invalid subject combination", details={"errors": errors})

    return NormalizedCombination(
        code=str(payload["code"]).strip().upper(),
        name=str(payload["name"]).strip(),
        description=payload.get("description"),
        principal_subject_ids=tuple(principal),
        subsidiary_subject_ids=tuple(subsidiary),
    )


# ==========================================
# Service
# ==========================================

class CombinationService:
    """Store canonical combinations and assign them to students."""

    def __init__(self, db: Session):
        self.db = db

    def upsert_combination(self, payload: CombinationPayload) -> SubjectCombination:
        """Create or replace a combination; membership changes bump its version."""
        normalized = normalize_combination(payload.model_dump(), load_subject_catalog(self.db))

        combination = self.db.execute(
            select(SubjectCombination).where(SubjectCombination.code == normalized.code)
        ).scalar_one_or_none()

        wanted = [
            (subject_id, CombinationRole.PRINCIPAL, position)
            for position, subject_id in enumerate(normalized.principal_subject_ids)
        ] + [
            (subject_id, CombinationRole.SUBSIDIARY, position)
            for position, subject_id in enumerate(normalized.subsidiary_subject_ids)
        ]

        if combination is None:
            combination = SubjectCombination(
                code=normalized.code,
                name=normalized.name,
                description=normalized.description,
                version=1,
            )
            combination.members = [
                CombinationSubject(subject_id=sid, role=role, position=pos) for sid, role, pos in wanted
            ]
            self.db.add(combination)
            self.db.commit()
            logger.info(f"Created subject combination {combination.code} with {len(wanted)} subjects")
            return combination

        combination.name = normalized.name
        combination.description = normalized.description
        current = {(m.subject_id, m.role, m.position) for m in combination.members}
        if current != set(wanted):
            existing = {m.subject_id: m for m in combination.members}
            keep = {sid for sid, _, _ in wanted}
            combination.members = [m for m in combination.members if m.subject_id in keep]
            for sid, role, pos in wanted:
                member = existing.get(sid)
                if member is None:
                    combination.members.append(CombinationSubject(subject_id=sid, role=role, position=pos))
                else:
                    member.role = role
                    member.position = pos
            combination.version += 1
            logger.info(f"Subject combination {combination.code} changed, now version {combination.version}")
        self.db.commit()
        return combination

    def get_combination(self, combination_id: int) -> SubjectCombination:
        combination = self.db.get(SubjectCombination, combination_id)
        if not combination:
            raise NotFoundError("Subject combination", str(combination_id))
        return combination

    def assign_combination(self, student_id: int, combination_id: int | None) -> StudentCombinationResponse:
        """Point an A-Level student at a combination, or clear it."""
        student = get_student(self.db, student_id)
        if student.education_level != Curriculum.A_LEVEL:
            raise ValidationError(
                "Subject combinations apply to A-Level students only",
                details={"student_id": student_id},
            )

        combination = self.get_combination(combination_id) if combination_id is not None else None
        student.subject_combination_id = combination.id if combination else None
        student.subject_combination = combination
        self.db.commit()
        logger.info(f"Student {student.admission_number} assigned combination {combination.code if combination else None}")

        return StudentCombinationResponse(
            student_id=student.id,
            subject_combination_id=student.subject_combination_id,
            combination_code=combination.code if combination else None,
            combination_version=combination.version if combination else None,
        )

    @staticmethod
    def to_response(combination: SubjectCombination) -> CombinationResponse:
        members = [
            CombinationMember(
                subject_id=m.subject_id,
                code=m.subject.code,
                name=m.subject.name,
                role=m.role,
                position=m.position,
            )
            for m in sorted(combination.members, key=lambda m: (m.role.value, m.position))
        ]
        return CombinationResponse(
            id=combination.id,
            code=combination.code,
            name=combination.name,
            description=combination.description,
            version=combination.version,
            principal_subjects=[m for m in members if m.role == CombinationRole.PRINCIPAL],
            subsidiary_subjects=[m for m in members if m.role == CombinationRole.SUBSIDIARY],
        )
