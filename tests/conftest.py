"""Shared fixtures for the Team Flow tests."""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from unittest.mock import Mock

import pytest

from team_flow.core.aggregator import Aggregator
from team_flow.core.repository import TaskRepository
from team_flow.core.store import Task, TaskPriority, TaskState

# Wednesday; the current ISO week starts Monday 2025-11-10 00:00 UTC
NOW = datetime(2025, 11, 12, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def aggregator() -> Aggregator:
    return Aggregator()


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """Factory for normalized tasks with sensible defaults."""
    counter = itertools.count(1)

    def _make(
        state: TaskState = TaskState.PENDING,
        assignee: Optional[str] = None,
        created_days_ago: float = 1.0,
        updated_days_ago: Optional[float] = None,
        due_days_ago: Optional[float] = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        tags: Optional[List[str]] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> Task:
        idx = next(counter)
        if created_at is None:
            created_at = NOW - timedelta(days=created_days_ago)
        if updated_at is None and updated_days_ago is not None:
            updated_at = NOW - timedelta(days=updated_days_ago)
        due_date = NOW - timedelta(days=due_days_ago) if due_days_ago is not None else None
        return Task(
            id=f"task-{idx}",
            title=f"Task {idx}",
            state=state,
            priority=priority,
            created_at=created_at,
            updated_at=updated_at,
            due_date=due_date,
            assignee_id=f"user-{assignee.lower()}" if assignee else None,
            assignee_name=assignee,
            tags=list(tags or []),
        )

    return _make


@pytest.fixture
def repository() -> Mock:
    repo = Mock(spec=TaskRepository)
    repo.fetch_assignee_names.return_value = {}
    repo.fetch_tasks.return_value = []
    return repo
