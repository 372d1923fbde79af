import os

# Must be set before results_engine.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"

from datetime import date
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import results_engine.models  # noqa: F401
from results_engine.core.database import Base, build_engine, build_session_factory, get_db
from results_engine.core.dependencies import ActorContext, get_policy_provider
from results_engine.core.locks import KeyedLockRegistry
from results_engine.models import (
    CombinationRole,
    CombinationSubject,
    Curriculum,
    EducationLevel,
    Exam,
    SchoolClass,
    Student,
    Subject,
    SubjectCombination,
)
from results_engine.services.grading import DEFAULT_POLICY, GradingPolicyProvider, build_policy_loader


@pytest.fixture
def engine(tmp_path):
    # File-backed so every session gets its own connection, as in production
    engine = build_engine(f"sqlite:///{tmp_path / 'results.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def policy():
    return DEFAULT_POLICY


@pytest.fixture
def locks():
    return KeyedLockRegistry(timeout=5)


@pytest.fixture
def actor():
    return ActorContext(user_id=7, ip_address="10.0.0.1", user_agent="pytest")


@pytest.fixture
def provider(session_factory):
    return GradingPolicyProvider(build_policy_loader(session_factory), ttl_seconds=300)


def _subject(code: str, name: str, level: EducationLevel, compulsory: bool = False) -> Subject:
    return Subject(code=code, name=name, education_level=level, is_compulsory=compulsory)


@pytest.fixture
def catalog(db):
    """Two classes, one per curriculum, with subjects, students and an exam."""
    o_subjects = [
        _subject("MATH", "Basic Mathematics", EducationLevel.O_LEVEL, compulsory=True),
        _subject("ENG", "English Language", EducationLevel.O_LEVEL, compulsory=True),
        _subject("BIO", "Biology", EducationLevel.O_LEVEL),
        _subject("CHEM", "Chemistry", EducationLevel.O_LEVEL),
        _subject("PHY", "Physics", EducationLevel.O_LEVEL),
        _subject("HIST", "History", EducationLevel.O_LEVEL),
        _subject("GEO", "Geography", EducationLevel.O_LEVEL),
        _subject("CIV", "Civics", EducationLevel.O_LEVEL),
        _subject("KIS", "Kiswahili", EducationLevel.O_LEVEL),
    ]
    a_subjects = [
        _subject("A-PHY", "Advanced Physics", EducationLevel.A_LEVEL),
        _subject("A-CHEM", "Advanced Chemistry", EducationLevel.A_LEVEL),
        _subject("A-MATH", "Advanced Mathematics", EducationLevel.A_LEVEL),
        _subject("A-HIST", "Advanced History", EducationLevel.A_LEVEL),
        _subject("BAM", "Basic Applied Mathematics", EducationLevel.A_LEVEL),
        _subject("GS", "General Studies", EducationLevel.A_LEVEL, compulsory=True),
    ]
    db.add_all(o_subjects + a_subjects)
    db.flush()
    subjects = {s.code: s for s in o_subjects + a_subjects}

    pcm = SubjectCombination(code="PCM", name="Physics, Chemistry, Mathematics", version=1)
    pcm.members = [
        CombinationSubject(subject_id=subjects["A-PHY"].id, role=CombinationRole.PRINCIPAL, position=0),
        CombinationSubject(subject_id=subjects["A-CHEM"].id, role=CombinationRole.PRINCIPAL, position=1),
        CombinationSubject(subject_id=subjects["A-MATH"].id, role=CombinationRole.PRINCIPAL, position=2),
        CombinationSubject(subject_id=subjects["BAM"].id, role=CombinationRole.SUBSIDIARY, position=0),
    ]
    db.add(pcm)

    form_two = SchoolClass(name="Form 2", section="A", education_level=Curriculum.O_LEVEL, form=2)
    form_two.subjects = [subjects[c] for c in ("MATH", "ENG", "BIO", "CHEM", "PHY", "HIST", "GEO", "CIV")]
    form_five = SchoolClass(name="Form 5", section="PCM", education_level=Curriculum.A_LEVEL, form=5)
    db.add_all([form_two, form_five])
    db.flush()

    o_students = [
        Student(
            admission_number=f"S00{i}",
            first_name=first,
            last_name="Mushi",
            education_level=Curriculum.O_LEVEL,
            form=2,
            class_id=form_two.id,
        )
        for i, first in enumerate(["Amani", "Baraka", "Neema", "Zawadi"], start=1)
    ]
    a_students = [
        Student(
            admission_number="A001",
            first_name="Juma",
            last_name="Said",
            education_level=Curriculum.A_LEVEL,
            form=5,
            class_id=form_five.id,
            subject_combination_id=pcm.id,
        ),
        Student(
            admission_number="A002",
            first_name="Rehema",
            last_name="Ally",
            education_level=Curriculum.A_LEVEL,
            form=5,
            class_id=form_five.id,
        ),
    ]
    db.add_all(o_students + a_students)

    exam = Exam(name="Midterm", term="Term 1", academic_year="2026", exam_type="MIDTERM", start_date=date(2026, 3, 2))
    db.add(exam)
    db.commit()

    return SimpleNamespace(
        subjects=subjects,
        pcm=pcm,
        form_two=form_two,
        form_five=form_five,
        o_students=o_students,
        a_students=a_students,
        exam=exam,
    )


@pytest.fixture
def client(session_factory, provider):
    from results_engine.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_policy_provider] = lambda: provider
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
