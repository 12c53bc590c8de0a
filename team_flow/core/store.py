"""
Denormalized Data Models for Team Flow Analytics.

This module defines the snapshot-based data structures produced by the
aggregator. Every derived entity is rebuilt from scratch on each aggregation
pass and handed to the presentation layer as a read-only bundle.

Key principles:
- ALL timestamps must be timezone-aware
- Task state and priority are normalized once, at ingestion
- ALL metrics are pre-calculated (no runtime aggregation)
- Snapshots are immutable (create new snapshot for updates)
- Snapshots carry no random identifiers, so equal input serializes equally
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


class TaskState(str, Enum):
    """Canonical task state."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.DONE, TaskState.CANCELLED)


class TaskPriority(str, Enum):
    """Canonical task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    URGENT = "urgent"


LoadStatus = Literal["overloaded", "balanced", "available"]
Severity = Literal["fast", "normal", "slow", "blocked"]
FlowHealthStatus = Literal["healthy", "warning", "critical"]


@dataclass
class Task:
    """
    Normalized task with the assignee display name embedded.

    Parameters
    ----------
    id : str
        Unique task identifier
    title : str
        Task title
    state : TaskState
        Canonical state (normalized from the source label)
    priority : TaskPriority
        Canonical priority ('medium' when the source has none)
    created_at : datetime
        When the task was created (must be timezone-aware)
    updated_at : Optional[datetime]
        Last update time (must be timezone-aware if set)
    due_date : Optional[datetime]
        Due date (must be timezone-aware if set)
    assignee_id : Optional[str]
        ID of the assigned member
    assignee_name : Optional[str]
        Display name of the assigned member (embedded, no join needed)
    tags : List[str]
        Unique free-text tags, in source order
    description : str
        Task description
    state_label : str
        State text exactly as stored in the source
    """

    id: str
    title: str
    state: TaskState
    priority: TaskPriority
    created_at: datetime
    updated_at: Optional[datetime] = None
    due_date: Optional[datetime] = None

    # Embedded assignee info (NO JOIN NEEDED)
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = None

    tags: List[str] = field(default_factory=list)
    description: str = ""
    state_label: str = ""

    def __post_init__(self) -> None:
        """Validate timezone-aware timestamps."""
        if self.created_at.tzinfo is None:
            raise ValueError(f"Task {self.id}: created_at must be timezone-aware")
        if self.updated_at and self.updated_at.tzinfo is None:
            raise ValueError(f"Task {self.id}: updated_at must be timezone-aware")
        if self.due_date and self.due_date.tzinfo is None:
            raise ValueError(f"Task {self.id}: due_date must be timezone-aware")

    @property
    def is_done(self) -> bool:
        return self.state is TaskState.DONE

    @property
    def is_in_progress(self) -> bool:
        return self.state is TaskState.IN_PROGRESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "state": self.state.value,
            "state_label": self.state_label,
            "priority": self.priority.value,
            "created_at": _serialize_datetime(self.created_at),
            "updated_at": _serialize_datetime(self.updated_at),
            "due_date": _serialize_datetime(self.due_date),
            "assignee_id": self.assignee_id,
            "assignee_name": self.assignee_name,
            "tags": list(self.tags),
            "description": self.description,
        }


@dataclass
class TeamStats:
    """Headline counters shared by both dashboards."""

    total: int = 0  # open (not done) tasks
    overdue: int = 0
    in_progress: int = 0
    completed_this_week: int = 0


@dataclass
class WorkloadEntry:
    """
    Workload of one member, partitioned by state.

    ``tasks`` holds the member's own open tasks so a bulk reassignment can
    start from them. ``old_tasks`` and ``old_tasks_percentage`` are only
    filled in by the flow-health dashboard.
    """

    user_id: str
    name: str
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    total: int = 0
    status: LoadStatus = "balanced"
    tasks: List[Task] = field(default_factory=list)
    old_tasks: int = 0
    old_tasks_percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "pending": self.pending,
            "in_progress": self.in_progress,
            "completed": self.completed,
            "total": self.total,
            "status": self.status,
            "old_tasks": self.old_tasks,
            "old_tasks_percentage": self.old_tasks_percentage,
            "tasks": [task.to_dict() for task in self.tasks],
        }


@dataclass
class WeeklyBucket:
    """
    One calendar week window ``[start, end)`` of the trailing trend.

    Parameters
    ----------
    label : str
        Display label ('Current', 'Week -1', ...)
    weeks_ago : int
        0 for the current week, up to 3
    start : datetime
        Inclusive window start (week start, midnight)
    end : datetime
        Exclusive window end (start + 7 days)
    created : int
        Tasks created in the window
    completed : int
        Done tasks whose last update falls in the window
    """

    label: str
    weeks_ago: int
    start: datetime
    end: datetime
    created: int = 0
    completed: int = 0

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError(f"Week bucket {self.label}: bounds must be timezone-aware")

    @property
    def net_difference(self) -> int:
        return self.completed - self.created

    @property
    def is_sustainable(self) -> bool:
        return self.net_difference >= 0

    def contains(self, moment: Optional[datetime]) -> bool:
        return moment is not None and self.start <= moment < self.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "weeks_ago": self.weeks_ago,
            "start": _serialize_datetime(self.start),
            "end": _serialize_datetime(self.end),
            "created": self.created,
            "completed": self.completed,
            "net_difference": self.net_difference,
            "is_sustainable": self.is_sustainable,
        }


@dataclass
class PriorityResolution:
    priority: TaskPriority
    days: float

    def to_dict(self) -> Dict[str, Any]:
        return {"priority": self.priority.value, "days": self.days}


@dataclass
class ResolutionStats:
    """Resolution time (creation to completion) in days."""

    average: float = 0.0
    median: float = 0.0
    sample_count: int = 0
    by_priority: List[PriorityResolution] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "average": self.average,
            "median": self.median,
            "sample_count": self.sample_count,
            "by_priority": [p.to_dict() for p in self.by_priority],
        }


@dataclass
class RankingEntry:
    rank: int
    user_id: str
    name: str
    completed: int
    streak: int


@dataclass
class TeamAlert:
    type: Literal["overdue", "overloaded", "unassigned"]
    severity: Literal["critical", "warning", "info"]
    message: str
    count: int


@dataclass
class DistributionSlice:
    name: str
    value: int


@dataclass
class Distribution:
    """Task counts by state, by priority and by tag (top tags only)."""

    by_state: List[DistributionSlice] = field(default_factory=list)
    by_priority: List[DistributionSlice] = field(default_factory=list)
    by_tag: List[DistributionSlice] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "by_state": [vars(s) for s in self.by_state],
            "by_priority": [vars(s) for s in self.by_priority],
            "by_tag": [vars(s) for s in self.by_tag],
        }


@dataclass
class StateBottleneck:
    """Age of the open tasks currently sitting in one state."""

    state: str
    avg_hours: float
    avg_days: float
    median_hours: float
    task_count: int
    severity: Severity


@dataclass
class StagnationAlert:
    """An in-progress task that has not moved for longer than the threshold."""

    task_id: str
    task_title: str
    assigned_to: Optional[str]
    state_change_date: datetime
    days_since_change: int
    threshold_exceeded: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_title": self.task_title,
            "assigned_to": self.assigned_to,
            "state_change_date": _serialize_datetime(self.state_change_date),
            "days_since_change": self.days_since_change,
            "threshold_exceeded": self.threshold_exceeded,
        }


@dataclass
class TagFocusMetric:
    tag: str
    count: int
    percentage: float  # 0-100, against the total task count


@dataclass
class TeamSnapshot:
    """
    Immutable snapshot for the standard team dashboard.

    Parameters
    ----------
    generated_at : datetime
        The "now" every relative-time calculation was anchored to
    organization_id : Optional[str]
        Organization the tasks belong to (None when unresolved)
    load_error : Optional[str]
        Why the tasks could not be loaded; None when loading succeeded.
        A failed load looks like an empty organization otherwise.
    total_tasks : int
        Number of tasks aggregated
    stats : TeamStats
        Headline counters
    workload : List[WorkloadEntry]
        Member workload, descending by pending count
    weekly_trend : List[WeeklyBucket]
        Exactly 4 buckets, oldest first
    resolution_stats : ResolutionStats
        Resolution time statistics for the completed window
    ranking : List[RankingEntry]
        Top members by completed tasks
    alerts : List[TeamAlert]
        Overdue / unassigned / overloaded alerts
    distribution : Distribution
        Counts by state, priority and tag
    ideal_load : int
        Ideal open-task count used for load classification
    """

    generated_at: datetime
    organization_id: Optional[str] = None
    load_error: Optional[str] = None
    total_tasks: int = 0
    stats: TeamStats = field(default_factory=TeamStats)
    workload: List[WorkloadEntry] = field(default_factory=list)
    weekly_trend: List[WeeklyBucket] = field(default_factory=list)
    resolution_stats: ResolutionStats = field(default_factory=ResolutionStats)
    ranking: List[RankingEntry] = field(default_factory=list)
    alerts: List[TeamAlert] = field(default_factory=list)
    distribution: Distribution = field(default_factory=Distribution)
    ideal_load: int = 8

    def __post_init__(self) -> None:
        """Validate timezone-aware timestamp."""
        if self.generated_at.tzinfo is None:
            raise ValueError("Snapshot generated_at must be timezone-aware")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert snapshot to JSON-serializable dictionary.

        Returns
        -------
        dict
            JSON-serializable representation
        """
        return {
            "variant": "team",
            "generated_at": _serialize_datetime(self.generated_at),
            "organization_id": self.organization_id,
            "load_error": self.load_error,
            "total_tasks": self.total_tasks,
            "stats": vars(self.stats),
            "workload": [w.to_dict() for w in self.workload],
            "weekly_trend": [b.to_dict() for b in self.weekly_trend],
            "resolution_stats": self.resolution_stats.to_dict(),
            "ranking": [vars(r) for r in self.ranking],
            "alerts": [vars(a) for a in self.alerts],
            "distribution": self.distribution.to_dict(),
            "ideal_load": self.ideal_load,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass
class FlowHealthSnapshot:
    """
    Immutable snapshot for the flow-health dashboard.

    Parameters
    ----------
    generated_at : datetime
        The "now" every relative-time calculation was anchored to
    organization_id : Optional[str]
        Organization the tasks belong to (None when unresolved)
    load_error : Optional[str]
        Why the tasks could not be loaded; None when loading succeeded.
        A failed load looks like an empty organization otherwise.
    total_tasks : int
        Number of tasks aggregated (denominator of tag percentages)
    stats : TeamStats
        Headline counters
    workload : List[WorkloadEntry]
        Member workload with staleness, descending by old task count
    weekly_trend : List[WeeklyBucket]
        Exactly 4 buckets, oldest first
    tag_focus_metrics : List[TagFocusMetric]
        Top tags by share of all tasks
    tagged_tasks : int
        Tasks carrying at least one tag
    untagged_count : int
        total_tasks minus the summed top tag counts; negative values mean
        the tag counts overlap and are reported as-is
    untagged_percentage : float
        untagged_count against total_tasks
    stagnation_alerts : List[StagnationAlert]
        Stalled in-progress tasks, most stalled first
    stagnation_threshold : float
        Threshold in days used for the alerts
    bottlenecks : List[StateBottleneck]
        Open-task age per state, slowest first
    flow_health_score : int
        Sum of the weekly net differences
    flow_health_status : str
        'healthy', 'warning' or 'critical'
    ideal_load : int
        Ideal open-task count used for load classification
    """

    generated_at: datetime
    organization_id: Optional[str] = None
    load_error: Optional[str] = None
    total_tasks: int = 0
    stats: TeamStats = field(default_factory=TeamStats)
    workload: List[WorkloadEntry] = field(default_factory=list)
    weekly_trend: List[WeeklyBucket] = field(default_factory=list)
    tag_focus_metrics: List[TagFocusMetric] = field(default_factory=list)
    tagged_tasks: int = 0
    untagged_count: int = 0
    untagged_percentage: float = 0.0
    stagnation_alerts: List[StagnationAlert] = field(default_factory=list)
    stagnation_threshold: float = 7.0
    bottlenecks: List[StateBottleneck] = field(default_factory=list)
    flow_health_score: int = 0
    flow_health_status: FlowHealthStatus = "healthy"
    ideal_load: int = 8

    def __post_init__(self) -> None:
        """Validate timezone-aware timestamp."""
        if self.generated_at.tzinfo is None:
            raise ValueError("Snapshot generated_at must be timezone-aware")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert snapshot to JSON-serializable dictionary.

        Returns
        -------
        dict
            JSON-serializable representation
        """
        return {
            "variant": "flow_health",
            "generated_at": _serialize_datetime(self.generated_at),
            "organization_id": self.organization_id,
            "load_error": self.load_error,
            "total_tasks": self.total_tasks,
            "stats": vars(self.stats),
            "workload": [w.to_dict() for w in self.workload],
            "weekly_trend": [b.to_dict() for b in self.weekly_trend],
            "tag_focus_metrics": [vars(m) for m in self.tag_focus_metrics],
            "tagged_tasks": self.tagged_tasks,
            "untagged_count": self.untagged_count,
            "untagged_percentage": self.untagged_percentage,
            "stagnation_alerts": [a.to_dict() for a in self.stagnation_alerts],
            "stagnation_threshold": self.stagnation_threshold,
            "bottlenecks": [vars(b) for b in self.bottlenecks],
            "flow_health_score": self.flow_health_score,
            "flow_health_status": self.flow_health_status,
            "ideal_load": self.ideal_load,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None
