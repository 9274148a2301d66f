"""
Unit Tests for the SQL posting and profile lookups

Runs the lookup queries against an in-memory SQLite database standing in
for the platform's PostgreSQL schema.
"""

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from internlink.db import postgres
from internlink.services.lookups import SqlPostingLookup, SqlProfileLookup


@pytest.fixture
def platform_db(monkeypatch):
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False},
                           poolclass=StaticPool)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE companies (company_id INTEGER PRIMARY KEY, company_name TEXT)"))
        conn.execute(text("CREATE TABLE jobs (job_id INTEGER PRIMARY KEY, company_id INTEGER, "
                          "title TEXT, status TEXT)"))
        conn.execute(text("CREATE TABLE students (student_id INTEGER PRIMARY KEY, full_name TEXT, "
                          "school TEXT, course TEXT, year_level INTEGER, city TEXT, barangay TEXT, "
                          "preferred_types TEXT, skills TEXT)"))
        conn.execute(text("INSERT INTO companies VALUES (1, 'Acme Robotics')"))
        conn.execute(text("INSERT INTO jobs VALUES (10, 1, 'Backend Intern', 'open'), "
                          "(11, 1, 'Data Intern', 'closed')"))
        conn.execute(text("INSERT INTO students VALUES (7, 'Maria Santos', 'UP Diliman', 'BSCS', 3, "
                          "'Quezon City', 'Krus na Ligas', 'remote, hybrid', 'python,sql')"))
    monkeypatch.setattr(postgres, "get_engine", lambda: engine)
    return engine


def test_fetch_rows_returns_dicts_by_column(platform_db):
    rows = postgres.fetch_rows("SELECT job_id, title FROM jobs WHERE status = :s", {"s": "open"})
    assert rows == [{"job_id": 10, "title": "Backend Intern"}]


def test_lookup_session_never_keeps_writes(platform_db):
    with postgres.lookup_session() as session:
        session.execute(text("INSERT INTO companies VALUES (2, 'Globex')"))

    assert postgres.fetch_rows("SELECT company_name FROM companies") == [{"company_name": "Acme Robotics"}]


def test_connection_check(platform_db):
    assert postgres.test_postgres_connection()


@pytest.mark.asyncio
async def test_posting_lookup(platform_db):
    lookup = SqlPostingLookup()

    open_posting = await lookup.get("10")
    assert open_posting.title == "Backend Intern"
    assert open_posting.company_name == "Acme Robotics"
    assert open_posting.is_active

    assert not (await lookup.get("11")).is_active
    assert await lookup.get("99") is None
    assert await lookup.get("not-a-number") is None


@pytest.mark.asyncio
async def test_profile_lookup_splits_comma_lists(platform_db):
    profile = await SqlProfileLookup().get("7")

    assert profile.name == "Maria Santos"
    assert profile.year_level == "3"
    assert profile.preferred_types == ["remote", "hybrid"]
    assert profile.skills == ["python", "sql"]
    assert await SqlProfileLookup().get("8") is None
