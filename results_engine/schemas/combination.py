"""Subject combination schemas."""

from pydantic import ConfigDict, Field

from results_engine.models.subject import CombinationRole
from results_engine.schemas.common import BaseSchema


class CombinationPayload(BaseSchema):
    """Combination as sent by upstream systems.

    Subject lists may arrive under several keys and in several shapes; any
    extra keys are kept for the normalizer to read.
    """

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None


class CombinationMember(BaseSchema):
    subject_id: int
    code: str
    name: str
    role: CombinationRole
    position: int


class CombinationResponse(BaseSchema):
    """Canonical combination."""

    id: int
    code: str
    name: str
    description: str | None
    version: int
    principal_subjects: list[CombinationMember]
    subsidiary_subjects: list[CombinationMember]


class AssignCombinationRequest(BaseSchema):
    subject_combination_id: int | None = Field(
        ...,
        description="Combination to assign, or null to clear it",
    )


class StudentCombinationResponse(BaseSchema):
    student_id: int
    subject_combination_id: int | None
    combination_code: str | None = None
    combination_version: int | None = None
