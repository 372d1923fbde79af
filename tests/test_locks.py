import threading
import time

import pytest

from results_engine.core.exceptions import ConcurrencyConflictError
from results_engine.core.locks import KeyedLockRegistry
from results_engine.core.scheduler import refresh_grading_policy_job
from results_engine.models.subject import Curriculum
from results_engine.schemas.grading import CurriculumPolicyUpdate, DivisionBand, GradeBand
from results_engine.services.grading import GradingPolicyProvider, GradingPolicyService, build_policy_loader


def test_same_key_is_serialized():
    locks = KeyedLockRegistry(timeout=5)
    active = []
    overlaps = []

    def worker():
        with locks.hold(("OLevelResult", 1, 2, 3)):
            if active:
                overlaps.append(True)
            active.append(1)
            time.sleep(0.01)
            active.pop()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []
    assert len(locks) == 0


def test_different_keys_do_not_block():
    locks = KeyedLockRegistry(timeout=0.05)
    with locks.hold("a"):
        with locks.hold("b"):
            assert len(locks) == 2


def test_timeout_raises_conflict():
    locks = KeyedLockRegistry(timeout=0.01)
    with locks.hold("a"):
        with pytest.raises(ConcurrencyConflictError):
            with locks.hold("a"):
                pass
    assert len(locks) == 0


def test_refresh_job_reads_stored_policy(db, session_factory):
    # Another process caches the defaults before the edit
    other = GradingPolicyProvider(build_policy_loader(session_factory), ttl_seconds=3600)
    assert other.get().a_level.grade_labels[0] == "A"

    stored = GradingPolicyProvider(build_policy_loader(session_factory))
    GradingPolicyService(db, stored).update_policy(
        Curriculum.A_LEVEL,
        CurriculumPolicyUpdate(
            grade_bands=[GradeBand(grade="P", min_marks=50, points=1), GradeBand(grade="F", min_marks=0, points=2)],
            division_bands=[DivisionBand(division="I", min_points=1, max_points=6)],
            best_of=3,
        ),
        user_id=1,
    )

    assert stored.get().a_level.grade_labels == ["P", "F"]
    assert other.get().a_level.grade_labels[0] == "A"

    refresh_grading_policy_job(other)
    assert other.get().a_level.grade_labels == ["P", "F"]


def test_refresh_job_survives_loader_failure(caplog):
    def broken():
        raise RuntimeError("database down")

    refresh_grading_policy_job(GradingPolicyProvider(broken))
    assert "Error refreshing grading policy" in caplog.text
