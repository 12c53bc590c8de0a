"""
Bulk reassignment of a member's open tasks.

The workload entry of a member carries their open tasks. A
``ReassignmentSelection`` tracks which of them are checked (all of them to
start with); ``reassign_selected`` moves the checked ones to another member
with a single repository call.
"""

import logging
from typing import List, Optional, Sequence, Set

from team_flow.core.aggregator import UNASSIGNED_KEY
from team_flow.core.repository import ReassignResult, TaskRepository
from team_flow.core.store import Task, WorkloadEntry

logger = logging.getLogger(__name__)


def is_valid_target(target_id: Optional[str], source_id: Optional[str] = None) -> bool:
    """A real member other than the source; never the unassigned bucket."""
    return bool(target_id) and target_id != UNASSIGNED_KEY and target_id != source_id


class ReassignmentSelection:
    """
    Checked/unchecked state of a member's tasks.

    Parameters
    ----------
    source : WorkloadEntry
        Member the tasks are moved away from
    """

    def __init__(self, source: WorkloadEntry):
        self.source = source
        self.tasks: List[Task] = list(source.tasks)
        self._selected: Set[str] = {t.id for t in self.tasks}

    @property
    def selected_ids(self) -> List[str]:
        """Checked task ids, in the member's task order."""
        return [t.id for t in self.tasks if t.id in self._selected]

    @property
    def all_selected(self) -> bool:
        return len(self._selected) == len(self.tasks)

    def is_selected(self, task_id: str) -> bool:
        return task_id in self._selected

    def toggle(self, task_id: str) -> None:
        if task_id in self._selected:
            self._selected.discard(task_id)
        elif any(t.id == task_id for t in self.tasks):
            self._selected.add(task_id)
        else:
            raise KeyError(f"Task {task_id} does not belong to {self.source.name}")

    def toggle_all(self) -> None:
        """Select every task, or none when all are already selected."""
        if self.all_selected:
            self._selected.clear()
        else:
            self._selected = {t.id for t in self.tasks}

    def can_confirm(self, target_id: Optional[str]) -> bool:
        return bool(self._selected) and is_valid_target(target_id, self.source.user_id)


def available_targets(
    workload: Sequence[WorkloadEntry], exclude_user_id: Optional[str] = None
) -> List[WorkloadEntry]:
    """Members tasks can be moved to (the source member excluded)."""
    return [
        w
        for w in workload
        if w.user_id != exclude_user_id and w.user_id != UNASSIGNED_KEY
    ]


def reassign_selected(
    selection: ReassignmentSelection,
    target_id: Optional[str],
    repository: TaskRepository,
) -> ReassignResult:
    """
    Move the selected tasks to ``target_id``.

    Nothing is sent to the repository when the selection is empty or the
    target is missing, unassigned or the source member itself.
    """
    if not selection.selected_ids:
        return ReassignResult(success=False, count=0, message="No tasks selected")
    if not selection.can_confirm(target_id):
        return ReassignResult(success=False, count=0, message="Invalid target member")

    task_ids = selection.selected_ids
    logger.info(
        f"Reassigning {len(task_ids)} tasks from {selection.source.user_id} to {target_id}"
    )
    return repository.reassign_tasks(task_ids, target_id)
