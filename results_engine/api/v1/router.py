"""Main API router aggregating all module routers."""

from fastapi import APIRouter

from results_engine.api.v1.endpoints import (
    combinations,
    grading_policies,
    history,
    reports,
    results,
)

api_router = APIRouter()

# Mark entry
api_router.include_router(
    results.router,
    prefix="/results",
    tags=["Results"],
)

# Marks history and revert
api_router.include_router(
    history.router,
    prefix="/history",
    tags=["Marks History"],
)

# Student and class reports
api_router.include_router(
    reports.router,
    prefix="/reports",
    tags=["Reports"],
)

# Subject combinations
api_router.include_router(
    combinations.router,
    prefix="/subject-combinations",
    tags=["Subject Combinations"],
)
api_router.include_router(
    combinations.students_router,
    prefix="/students",
    tags=["Subject Combinations"],
)

# Grading policy administration
api_router.include_router(
    grading_policies.router,
    prefix="/grading-policies",
    tags=["Grading Policies"],
)
