"""Grading policy endpoints."""

from fastapi import APIRouter

from results_engine.core.database import DbSession
from results_engine.core.dependencies import Actor, PolicyProvider
from results_engine.models.subject import Curriculum
from results_engine.schemas.grading import CurriculumPolicy, CurriculumPolicyUpdate, GradingPolicy
from results_engine.services.grading import GradingPolicyService

router = APIRouter()


@router.get("", response_model=GradingPolicy)
def get_grading_policy(db: DbSession, provider: PolicyProvider):
    """Grade and division tables currently in force."""
    return GradingPolicyService(db, provider).get_policy()


@router.put("/{curriculum}", response_model=CurriculumPolicy)
def update_grading_policy(
    curriculum: Curriculum,
    request: CurriculumPolicyUpdate,
    db: DbSession,
    provider: PolicyProvider,
    actor: Actor,
):
    """
    Replace the grade and division tables of one curriculum.
    Takes effect immediately in this process; other processes pick it up on refresh.
    """
    return GradingPolicyService(db, provider).update_policy(curriculum, request, user_id=actor.user_id)
