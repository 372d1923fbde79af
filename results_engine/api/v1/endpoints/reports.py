"""Student and class report endpoints."""

import asyncio
import logging
import threading

from fastapi import APIRouter, Query, Request, Response
from fastapi.concurrency import run_in_threadpool

from results_engine.core.database import DbSession
from results_engine.core.dependencies import CurrentPolicy
from results_engine.core.exceptions import ComputationCancelled
from results_engine.schemas.summary import ClassSummary, StudentSummary
from results_engine.services.aggregation import ResultsAggregationService

logger = logging.getLogger(__name__)

router = APIRouter()

# Non-standard status used by proxies for "client closed request"
CLIENT_CLOSED_REQUEST = 499


@router.get("/students/{student_id}", response_model=StudentSummary)
def get_student_report(
    student_id: int,
    db: DbSession,
    policy: CurrentPolicy,
    exam_id: int = Query(...),
):
    """
    Results, division and class position of one student for an exam.
    """
    service = ResultsAggregationService(db, policy)
    return service.compute_student_summary(student_id, exam_id)


@router.get("/classes/{class_id}", response_model=ClassSummary)
async def get_class_report(
    class_id: int,
    request: Request,
    db: DbSession,
    policy: CurrentPolicy,
    exam_id: int = Query(...),
):
    """
    Ranked results of a whole class for an exam, with subject statistics.
    Computation stops early if the client disconnects.
    """
    service = ResultsAggregationService(db, policy)
    cancel_event = threading.Event()

    async def watch_disconnect():
        while not cancel_event.is_set():
            if await request.is_disconnected():
                cancel_event.set()
                return
            await asyncio.sleep(0.5)

    watcher = asyncio.create_task(watch_disconnect())
    try:
        return await run_in_threadpool(service.compute_class_summary, class_id, exam_id, cancel_event)
    except ComputationCancelled:
        logger.info(f"Class report for class {class_id} exam {exam_id} cancelled by client")
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    finally:
        watcher.cancel()
