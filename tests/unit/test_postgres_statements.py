"""The Postgres repository's guarded UPDATE statements, compiled without a database."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy.dialects import postgresql

from chronicle.jobs.models import BookEntry
from chronicle.storage.postgres_jobs_repo import build_book_entries_update, build_guarded_job_update, build_lease_statement

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
STALE_BEFORE = datetime(2026, 3, 1, 8, 58, tzinfo=UTC)


def _compile(statement):
  compiled = statement.compile(dialect=postgresql.dialect())
  sql = " ".join(str(compiled).split())
  assert " WHERE " in sql and " RETURNING " in sql
  where_clause = sql.split(" WHERE ", 1)[1].split(" RETURNING ", 1)[0]
  return sql, where_clause, compiled.params


def test_lease_matches_free_stale_or_own_leases_of_active_jobs() -> None:
  sql, where_clause, params = _compile(build_lease_statement("job-1", worker_id="worker-a", now=NOW, stale_before=STALE_BEFORE))

  assert sql.startswith("UPDATE generation_jobs SET")
  assert "generation_jobs.id =" in where_clause
  assert "generation_jobs.status IN" in where_clause
  assert "generation_jobs.locked_at IS NULL OR generation_jobs.locked_at <" in where_clause
  assert "OR generation_jobs.locked_by =" in where_clause
  assert "generation_jobs.version + " in sql.split(" WHERE ", 1)[0]
  assert "job-1" in params.values()
  assert STALE_BEFORE in params.values()
  assert sorted(next(value for value in params.values() if isinstance(value, (list, tuple)))) == ["pending", "processing"]


def test_job_commit_requires_lease_owner_and_version() -> None:
  sql, where_clause, params = _compile(build_guarded_job_update("job-1", worker_id="worker-b", expected_version=41, status="pending", locked_by=None))

  set_clause = sql.split(" WHERE ", 1)[0]
  assert "generation_jobs.id =" in where_clause
  assert "generation_jobs.locked_by =" in where_clause
  assert "generation_jobs.version =" in where_clause
  assert "locked_at" not in where_clause
  assert "generation_jobs.version +" in set_clause
  assert "worker-b" in params.values()
  assert 41 in params.values()


def test_book_edit_requires_complete_and_unchanged_book() -> None:
  entry = BookEntry(day="July 4", year="1969", headline="Headline", history_event="Story.", why_included="Reason.")
  sql, where_clause, params = _compile(build_book_entries_update("book-1", entries=[entry], additional_entry_count=2, expected_updated_at=STALE_BEFORE, now=NOW))

  assert sql.startswith("UPDATE books SET")
  assert "books.id =" in where_clause
  assert "books.generation_status =" in where_clause
  assert "books.updated_at =" in where_clause
  assert "complete" in params.values()
  assert STALE_BEFORE in params.values()
  assert NOW in params.values()
