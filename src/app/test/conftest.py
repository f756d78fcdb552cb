# src/app/test/conftest.py
import os
import pytest
from httpx import AsyncClient, ASGITransport
from dotenv import load_dotenv

load_dotenv()
# app.core.config import 전에 테스트용 기본값을 넣어둡니다.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ALLOW_DEMO_WRITES", "false")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.core.exceptions import AnalysisServiceError  # noqa: E402
from app.database import Base, build_engine  # noqa: E402
from app.models.models import Classroom, Relation, Student  # noqa: E402
from app.services.session_coordinator import RunRegistry  # noqa: E402


class FakeAnalyzer:
    """
    Gemini 대신 사용하는 분석 서비스.
    calls에 (stage, payload)를 기록하고, fail_on 단계에서 error를 발생시킵니다.
    """

    def __init__(self, fail_on=None, error=None, output="분석 결과"):
        self.fail_on = fail_on
        self.error = error
        self.output = output
        self.calls = []

    @property
    def called_stages(self):
        return [stage.value for stage, _ in self.calls]

    def analyze(self, stage, payload):
        self.calls.append((stage, payload))
        if self.fail_on is not None and stage == self.fail_on:
            raise self.error or AnalysisServiceError("분석 서비스 응답 없음")
        return f"{self.output} ({stage.value})"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine():
    """테스트마다 격리된 SQLite 메모리 DB"""
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed_class(db):
    """학생 n명(display_order 1..n)과 이웃 학생 간 관계를 가진 학급을 만듭니다."""

    def _seed(n_students=12, is_demo=False, is_public=False, name="3학년 2반"):
        classroom = Classroom(
            name=name,
            school_name="한빛초등학교",
            grade="3학년",
            is_demo=is_demo,
            is_public=is_public,
        )
        db.add(classroom)
        db.flush()

        students = []
        # 입력 순서와 명단 순서가 다르도록 역순으로 추가
        for order in range(n_students, 0, -1):
            student = Student(
                class_id=classroom.id,
                name=f"학생{order:02d}",
                gender="F" if order % 2 else "M",
                display_order=order,
            )
            db.add(student)
            students.append(student)
        db.flush()

        students.sort(key=lambda s: s.display_order)
        for left, right in zip(students, students[1:]):
            db.add(
                Relation(
                    from_student_id=left.id,
                    to_student_id=right.id,
                    relation_type="friend",
                )
            )
        db.commit()
        return classroom

    return _seed


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def registry():
    return RunRegistry()


@pytest.fixture(scope="session")
def app_instance():
    from app.main import app

    return app


@pytest.fixture
def overrides(app_instance, session_factory, analyzer, registry):
    from app.database import get_db, get_session_factory
    from app.routers.analysis import get_analysis_service, get_run_registry

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app_instance.dependency_overrides[get_db] = _get_db
    app_instance.dependency_overrides[get_session_factory] = lambda: session_factory
    app_instance.dependency_overrides[get_analysis_service] = lambda: analyzer
    app_instance.dependency_overrides[get_run_registry] = lambda: registry
    yield app_instance.dependency_overrides
    app_instance.dependency_overrides.clear()


@pytest.fixture
def api(app_instance, overrides):
    with TestClient(app_instance) as client:
        yield client


@pytest.fixture
async def client(app_instance, overrides):
    async with AsyncClient(
        transport=ASGITransport(app=app_instance), base_url="http://test"
    ) as ac:
        yield ac
