"""
Pytest configuration and shared fixtures
"""
import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient

from codepuzzles.models import AnswerKey, Commit, FileInfo, Puzzle, Repo


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    """Reset singleton clients and services before each test"""
    import codepuzzles.core.supabase_client
    import codepuzzles.services.cache
    import codepuzzles.services.credential_rotator
    import codepuzzles.services.github_service
    import codepuzzles.services.grading
    import codepuzzles.services.groq_service
    import codepuzzles.services.puzzle_generator
    import codepuzzles.services.puzzle_repository
    import codepuzzles.services.rate_limiter

    monkeypatch.setattr(codepuzzles.core.supabase_client, "_supabase_client", None)
    monkeypatch.setattr(codepuzzles.services.cache, "_puzzle_cache_instance", None)
    monkeypatch.setattr(codepuzzles.services.cache, "_file_cache_instance", None)
    monkeypatch.setattr(codepuzzles.services.credential_rotator, "_grading_rotator_instance", None)
    monkeypatch.setattr(codepuzzles.services.github_service, "_github_service_instance", None)
    monkeypatch.setattr(codepuzzles.services.grading, "_grading_engine_instance", None)
    monkeypatch.setattr(codepuzzles.services.groq_service, "_groq_service_instance", None)
    monkeypatch.setattr(codepuzzles.services.puzzle_generator, "_puzzle_generator_instance", None)
    monkeypatch.setattr(codepuzzles.services.puzzle_repository, "_puzzle_repository_instance", None)
    monkeypatch.setattr(codepuzzles.services.rate_limiter, "_rate_limiter", None)
    monkeypatch.setattr(codepuzzles.services.rate_limiter, "_redis_client", None)


@pytest.fixture
def test_app():
    """Fresh FastAPI app with every router, without the startup lifespan"""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError
    from codepuzzles.api.admin import router as admin_router
    from codepuzzles.api.puzzles import router as puzzles_router
    from codepuzzles.api.routes import router
    from codepuzzles.config import settings
    from codepuzzles.utils.request_validation import request_validation_exception_handler

    app = FastAPI(title=settings.app_name, debug=settings.debug)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.include_router(router, prefix="/api")
    app.include_router(puzzles_router, prefix="/api")
    app.include_router(admin_router, prefix="/api/admin", tags=["admin"])
    return app


@pytest.fixture
def client(test_app):
    """FastAPI test client"""
    return TestClient(test_app)


def create_query_chain(data=None, count=None):
    """Chainable Supabase query mock whose execute() returns ``data``/``count``"""
    chain = Mock()
    for method in ("select", "eq", "order", "range", "limit", "in_", "insert", "update", "delete", "upsert"):
        setattr(chain, method, Mock(return_value=chain))
    chain.execute = Mock(return_value=Mock(data=data if data is not None else [], count=count))
    return chain


@pytest.fixture
def query_chain():
    """Factory for standalone query chains"""
    return create_query_chain


@pytest.fixture
def mock_supabase_client(monkeypatch):
    """Mock Supabase client; every table shares one query chain"""
    mock_client = Mock()
    chain = create_query_chain()
    mock_client.table = Mock(return_value=chain)
    mock_client.chain = chain

    # Override the function AND reset singleton
    def get_mock_client():
        return mock_client

    monkeypatch.setattr("codepuzzles.core.supabase_client.get_supabase_client", get_mock_client)
    monkeypatch.setattr("codepuzzles.services.puzzle_repository.get_supabase_client", get_mock_client)
    monkeypatch.setattr("codepuzzles.core.supabase_client._supabase_client", mock_client)

    return mock_client


SAMPLE_CONTENT = "\n".join(f"line {n}" for n in range(1, 31))


@pytest.fixture
def make_puzzle():
    """Factory for puzzles over a 30-line Python file"""
    def _make(
        puzzle_id="octo:demo:src/app.py:abc123",
        content=SAMPLE_CONTENT,
        path="src/app.py",
        answer_key=None,
        **overrides,
    ):
        data = dict(
            puzzle_id=puzzle_id,
            repo=Repo(
                owner="octo",
                name="demo",
                default_branch="main",
                license_url="https://github.com/octo/demo/blob/main/LICENSE",
            ),
            file=FileInfo(path=path, content=content, language="python", size_bytes=len(content)),
            commit=Commit(sha="abc123", branch="main"),
            question="Which lines decide the return value?",
            answer_key=answer_key or AnswerKey.model_validate({
                "startLine": 3,
                "endLine": 5,
                "task_type": "TRACE",
                "answer": "42",
                "choices": ["41", "42"],
            }),
            explanation="Lines 3-5 compute it.",
            grading_rubric="Correct answer: 42. Grade by exact match or rubric in explanation.",
            category="data",
            language="Python",
        )
        data.update(overrides)
        return Puzzle(**data)

    return _make
