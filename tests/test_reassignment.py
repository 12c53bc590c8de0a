"""Tests for bulk reassignment of a member's open tasks."""

from unittest.mock import Mock

import pytest

from team_flow.core.aggregator import UNASSIGNED_KEY
from team_flow.core.reassignment import (
    ReassignmentSelection,
    available_targets,
    is_valid_target,
    reassign_selected,
)
from team_flow.core.repository import ReassignResult, TaskRepository
from team_flow.core.store import TaskState, WorkloadEntry


@pytest.fixture
def workload(aggregator, now, make_task):
    tasks = [make_task(TaskState.PENDING, "Ana") for _ in range(3)]
    tasks.append(make_task(TaskState.DONE, "Ana", updated_days_ago=1))
    tasks.append(make_task(TaskState.PENDING, "Luis"))
    tasks.append(make_task(TaskState.PENDING, None))
    return aggregator.build_team_snapshot(tasks, now).workload


@pytest.fixture
def ana(workload):
    return next(w for w in workload if w.name == "Ana")


@pytest.fixture
def repo():
    repo = Mock(spec=TaskRepository)
    repo.reassign_tasks.side_effect = lambda ids, target: ReassignResult(
        success=True, count=len(ids)
    )
    return repo


class TestSelection:
    def test_starts_with_all_open_tasks_selected(self, ana):
        selection = ReassignmentSelection(ana)

        assert selection.all_selected
        assert selection.selected_ids == [t.id for t in ana.tasks]
        assert len(selection.selected_ids) == 3

    def test_toggle_keeps_task_order(self, ana):
        selection = ReassignmentSelection(ana)
        first, second, third = [t.id for t in ana.tasks]

        selection.toggle(second)
        assert selection.selected_ids == [first, third]
        assert not selection.is_selected(second)

        selection.toggle(second)
        assert selection.selected_ids == [first, second, third]

    def test_toggle_foreign_task_raises(self, ana):
        with pytest.raises(KeyError):
            ReassignmentSelection(ana).toggle("task-999")

    def test_toggle_all(self, ana):
        selection = ReassignmentSelection(ana)

        selection.toggle_all()
        assert selection.selected_ids == []

        selection.toggle_all()
        assert selection.all_selected

    def test_partial_selection_toggle_all_selects_everything(self, ana):
        selection = ReassignmentSelection(ana)
        selection.toggle(ana.tasks[0].id)

        selection.toggle_all()

        assert selection.all_selected

    def test_can_confirm(self, ana):
        selection = ReassignmentSelection(ana)

        assert selection.can_confirm("user-luis")
        assert not selection.can_confirm(None)
        assert not selection.can_confirm("")
        assert not selection.can_confirm(ana.user_id)
        assert not selection.can_confirm(UNASSIGNED_KEY)

        selection.toggle_all()
        assert not selection.can_confirm("user-luis")


def test_available_targets_exclude_source(workload, ana):
    targets = available_targets(workload, exclude_user_id=ana.user_id)
    assert [t.user_id for t in targets] == ["user-luis"]


def test_idle_member_is_a_target(aggregator, now, make_task):
    tasks = [make_task(TaskState.PENDING, "Ana") for _ in range(2)]
    workload = aggregator.build_team_snapshot(
        tasks, now, members={"user-ana": "Ana", "user-bob": "Bob"}
    ).workload

    targets = available_targets(workload, exclude_user_id="user-ana")

    assert [(t.user_id, t.status) for t in targets] == [("user-bob", "available")]


@pytest.mark.parametrize(
    "target,source,expected",
    [
        ("user-luis", None, True),
        ("user-luis", "user-ana", True),
        ("user-ana", "user-ana", False),
        (UNASSIGNED_KEY, None, False),
        ("", None, False),
        (None, None, False),
    ],
)
def test_is_valid_target(target, source, expected):
    assert is_valid_target(target, source) is expected


def test_available_targets_skip_unassigned_bucket():
    workload = [
        WorkloadEntry(user_id="user-ana", name="Ana"),
        WorkloadEntry(user_id=UNASSIGNED_KEY, name="Unassigned"),
    ]
    assert [t.user_id for t in available_targets(workload)] == ["user-ana"]


class TestReassignSelected:
    def test_moves_selected_tasks_in_one_call(self, ana, repo):
        selection = ReassignmentSelection(ana)
        selection.toggle(ana.tasks[1].id)

        result = reassign_selected(selection, "user-luis", repo)

        repo.reassign_tasks.assert_called_once_with(
            [ana.tasks[0].id, ana.tasks[2].id], "user-luis"
        )
        assert result.success
        assert result.count == 2

    def test_empty_selection_is_rejected_without_io(self, ana, repo):
        selection = ReassignmentSelection(ana)
        selection.toggle_all()

        result = reassign_selected(selection, "user-luis", repo)

        assert not result.success
        assert result.message == "No tasks selected"
        repo.reassign_tasks.assert_not_called()

    @pytest.mark.parametrize("target", [None, "user-ana", UNASSIGNED_KEY])
    def test_invalid_target_is_rejected_without_io(self, ana, repo, target):
        result = reassign_selected(ReassignmentSelection(ana), target, repo)

        assert not result.success
        assert result.message == "Invalid target member"
        repo.reassign_tasks.assert_not_called()

    def test_repository_failure_is_returned(self, ana):
        repo = Mock(spec=TaskRepository)
        repo.reassign_tasks.return_value = ReassignResult(
            success=False, count=0, message="permission denied"
        )

        result = reassign_selected(ReassignmentSelection(ana), "user-luis", repo)

        assert not result.success
        assert result.message == "permission denied"
