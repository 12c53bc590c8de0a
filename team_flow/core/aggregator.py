"""
Team Task Aggregator for the Team Flow dashboards.

Turns the flat task list of one organization into the derived entities shown
on the team dashboard and the flow-health dashboard.

The aggregator:
1. Loads task rows and member names from the repository (I/O boundary)
2. Normalizes rows into ``Task`` objects (canonical state and priority)
3. Classifies every task on all axes in a single pass
4. Sorts, ranks and summarizes the accumulated data
5. Returns an immutable snapshot

The build methods are pure: "now" is passed in, the input list is never
mutated, and the same input always yields the same snapshot.
"""

import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from team_flow.core.normalize import normalize_tasks
from team_flow.core.repository import TaskRepository
from team_flow.core.settings import AnalyticsSettings
from team_flow.core.statistics import (
    elapsed_days,
    lower_median,
    mean,
    months_before,
    placeholder_streak,
    start_of_week,
    whole_hours_as_days,
)
from team_flow.core.store import (
    Distribution,
    DistributionSlice,
    FlowHealthSnapshot,
    FlowHealthStatus,
    LoadStatus,
    PriorityResolution,
    RankingEntry,
    ResolutionStats,
    Severity,
    StagnationAlert,
    StateBottleneck,
    TagFocusMetric,
    Task,
    TaskPriority,
    TaskState,
    TeamAlert,
    TeamSnapshot,
    TeamStats,
    WeeklyBucket,
    WorkloadEntry,
)

logger = logging.getLogger(__name__)

UNASSIGNED_KEY = "__unassigned__"
UNASSIGNED_NAME = "Unassigned"
WEEKS_IN_TREND = 4
DISTRIBUTION_TAG_LIMIT = 5

# Most urgent first
URGENCY_ORDER = (
    TaskPriority.URGENT,
    TaskPriority.CRITICAL,
    TaskPriority.HIGH,
    TaskPriority.MEDIUM,
    TaskPriority.LOW,
)


@dataclass
class LoadResult:
    """Tasks and member names of one organization, plus any fetch error."""

    tasks: List[Task] = field(default_factory=list)
    members: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class _MemberTally:
    user_id: str
    name: str
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    old_tasks: int = 0
    tasks: List[Task] = field(default_factory=list)


@dataclass
class _Accumulation:
    """Everything collected during the single pass over the tasks."""

    stats: TeamStats
    members: Dict[str, _MemberTally]
    buckets: List[WeeklyBucket]
    resolution_days: List[float]
    resolution_by_priority: Dict[TaskPriority, List[float]]
    tag_counts: Counter
    tagged_tasks: int
    state_counts: Counter
    priority_counts: Counter
    ages_by_state: Dict[TaskState, List[float]]
    in_progress_tasks: List[Task]


def flow_health(weekly_trend: Sequence[WeeklyBucket]) -> Tuple[int, FlowHealthStatus]:
    """
    Score the trailing weeks by their summed net difference.

    Returns
    -------
    Tuple[int, str]
        The score and 'critical' (< -10), 'warning' (< 0) or 'healthy'
    """
    score = sum(bucket.net_difference for bucket in weekly_trend)
    if score < -10:
        return score, "critical"
    if score < 0:
        return score, "warning"
    return score, "healthy"


def bottleneck_severity(avg_days: float) -> Severity:
    if avg_days > 14:
        return "blocked"
    if avg_days > 7:
        return "slow"
    if avg_days < 2:
        return "fast"
    return "normal"


class Aggregator:
    """
    Builds team and flow-health snapshots from an organization's tasks.

    Parameters
    ----------
    settings : Optional[AnalyticsSettings]
        Thresholds and limits (defaults when None)
    repository : Optional[TaskRepository]
        Source of task rows and member names. Only needed by the
        ``create_*`` and ``load_tasks`` methods.
    """

    def __init__(
        self,
        settings: Optional[AnalyticsSettings] = None,
        repository: Optional[TaskRepository] = None,
    ):
        self.settings = settings or AnalyticsSettings()
        self.repository = repository

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def resolve_organization_id(self, user_id: Optional[str]) -> Optional[str]:
        """Organization of ``user_id``, or None if it cannot be resolved."""
        if not user_id or self.repository is None:
            return None
        try:
            return self.repository.resolve_organization_id(user_id)
        except Exception as e:
            logger.error(f"Error resolving organization for user {user_id}: {e}")
            return None

    def load_tasks(self, organization_id: str, now: datetime) -> List[Task]:
        """
        Fetch and normalize the tasks of one organization.

        Fetch failures are logged and produce an empty list; a failed name
        lookup leaves every task unassigned instead.
        """
        return self.load(organization_id, now).tasks

    def load(self, organization_id: str, now: datetime) -> LoadResult:
        """
        Fetch members and tasks of one organization.

        Never raises. A failed fetch is logged and recorded in
        ``LoadResult.error`` so the snapshot can be told apart from an
        organization that really has no tasks.
        """
        if self.repository is None:
            logger.warning("No task repository configured, returning no tasks")
            return LoadResult(error="Task repository is not configured")

        error = None
        try:
            names = self.repository.fetch_assignee_names(organization_id)
        except Exception as e:
            logger.error(f"Error fetching members for org {organization_id}: {e}")
            names = {}
            error = f"Could not load members: {e}"

        cutoff = months_before(now, self.settings.completed_window_months)
        try:
            rows = self.repository.fetch_tasks(organization_id, cutoff)
        except Exception as e:
            logger.error(
                f"Error fetching tasks for org {organization_id}: {e}", exc_info=True
            )
            return LoadResult(error=f"Could not load tasks: {e}")

        tasks = normalize_tasks(rows, names)
        logger.info(f"Loaded {len(tasks)} tasks for org {organization_id}")
        return LoadResult(tasks=tasks, members=names, error=error)

    def create_team_snapshot(
        self, organization_id: Optional[str], now: Optional[datetime] = None
    ) -> TeamSnapshot:
        """Load tasks and build the team dashboard snapshot."""
        now = now or datetime.now(timezone.utc)
        loaded = self._load_for_snapshot(organization_id, now)
        snapshot = self.build_team_snapshot(
            loaded.tasks,
            now,
            organization_id,
            members=loaded.members,
            load_error=loaded.error,
        )
        logger.info(
            f"Team snapshot for org {organization_id}: {len(loaded.tasks)} tasks, "
            f"{len(snapshot.workload)} members, {len(snapshot.alerts)} alerts"
        )
        return snapshot

    def create_flow_health_snapshot(
        self, organization_id: Optional[str], now: Optional[datetime] = None
    ) -> FlowHealthSnapshot:
        """Load tasks and build the flow-health dashboard snapshot."""
        now = now or datetime.now(timezone.utc)
        loaded = self._load_for_snapshot(organization_id, now)
        snapshot = self.build_flow_health_snapshot(
            loaded.tasks,
            now,
            organization_id,
            members=loaded.members,
            load_error=loaded.error,
        )
        logger.info(
            f"Flow-health snapshot for org {organization_id}: {len(loaded.tasks)} tasks, "
            f"score={snapshot.flow_health_score} ({snapshot.flow_health_status}), "
            f"{len(snapshot.stagnation_alerts)} stagnation alerts"
        )
        return snapshot

    def _load_for_snapshot(
        self, organization_id: Optional[str], now: datetime
    ) -> LoadResult:
        if not organization_id:
            logger.info("No organization resolved, building empty snapshot")
            return LoadResult()
        return self.load(organization_id, now)

    # ------------------------------------------------------------------
    # Pure builders
    # ------------------------------------------------------------------

    def build_team_snapshot(
        self,
        tasks: Sequence[Task],
        now: datetime,
        organization_id: Optional[str] = None,
        members: Optional[Mapping[str, str]] = None,
        load_error: Optional[str] = None,
    ) -> TeamSnapshot:
        """
        Build the standard team dashboard.

        Parameters
        ----------
        tasks : Sequence[Task]
            Normalized tasks of one organization (not mutated)
        now : datetime
            Timezone-aware anchor for every relative-time calculation
        organization_id : Optional[str]
            Recorded on the snapshot
        members : Optional[Mapping[str, str]]
            Organization members (id to display name). Members without tasks
            still get a workload entry.
        load_error : Optional[str]
            Fetch failure to report instead of a plain empty dashboard

        Returns
        -------
        TeamSnapshot
            Stats, workload (descending pending), 4 weekly buckets,
            resolution statistics, ranking, alerts and distributions
        """
        acc = self._accumulate(tasks, now, members)
        workload = self._build_workload(acc.members, track_staleness=False)

        return TeamSnapshot(
            generated_at=now,
            organization_id=organization_id,
            load_error=load_error,
            total_tasks=len(tasks),
            stats=acc.stats,
            workload=workload,
            weekly_trend=acc.buckets,
            resolution_stats=self._build_resolution_stats(acc),
            ranking=self._build_ranking(workload),
            alerts=self._build_alerts(acc, workload),
            distribution=self._build_distribution(acc),
            ideal_load=self.settings.ideal_load,
        )

    def build_flow_health_snapshot(
        self,
        tasks: Sequence[Task],
        now: datetime,
        organization_id: Optional[str] = None,
        members: Optional[Mapping[str, str]] = None,
        load_error: Optional[str] = None,
    ) -> FlowHealthSnapshot:
        """
        Build the flow-health dashboard.

        Parameters
        ----------
        tasks : Sequence[Task]
            Normalized tasks of one organization (not mutated)
        now : datetime
            Timezone-aware anchor for every relative-time calculation
        organization_id : Optional[str]
            Recorded on the snapshot
        members : Optional[Mapping[str, str]]
            Organization members (id to display name). Members without tasks
            still get a workload entry.
        load_error : Optional[str]
            Fetch failure to report instead of a plain empty dashboard

        Returns
        -------
        FlowHealthSnapshot
            Stats, staleness-aware workload, weekly trend with net
            differences, tag focus, stagnation alerts, bottlenecks and the
            flow-health score
        """
        acc = self._accumulate(tasks, now, members)
        workload = self._build_workload(acc.members, track_staleness=True)
        threshold = self.stagnation_threshold(acc.resolution_days)
        tag_metrics = self._build_tag_focus(acc.tag_counts, len(tasks))
        untagged_count, untagged_percentage = self._untagged_remainder(
            tag_metrics, len(tasks)
        )
        score, status = flow_health(acc.buckets)

        return FlowHealthSnapshot(
            generated_at=now,
            organization_id=organization_id,
            load_error=load_error,
            total_tasks=len(tasks),
            stats=acc.stats,
            workload=workload,
            weekly_trend=acc.buckets,
            tag_focus_metrics=tag_metrics,
            tagged_tasks=acc.tagged_tasks,
            untagged_count=untagged_count,
            untagged_percentage=untagged_percentage,
            stagnation_alerts=self._build_stagnation_alerts(
                acc.in_progress_tasks, now, threshold
            ),
            stagnation_threshold=threshold,
            bottlenecks=self._build_bottlenecks(acc.ages_by_state),
            flow_health_score=score,
            flow_health_status=status,
            ideal_load=self.settings.ideal_load,
        )

    def weekly_buckets(self, now: datetime) -> List[WeeklyBucket]:
        """
        Empty buckets for the current week and the 3 before it, oldest first.

        Windows are ``[start, start + 7 days)`` and start at midnight on
        ``settings.week_starts_on`` in ``now``'s timezone, so consecutive
        buckets share their boundary and never overlap.
        """
        current_start = start_of_week(now, self.settings.week_starts_on)
        buckets = []
        for weeks_ago in range(WEEKS_IN_TREND - 1, -1, -1):
            start = current_start - timedelta(weeks=weeks_ago)
            buckets.append(
                WeeklyBucket(
                    label="Current" if weeks_ago == 0 else f"Week -{weeks_ago}",
                    weeks_ago=weeks_ago,
                    start=start,
                    end=start + timedelta(weeks=1),
                )
            )
        return buckets

    def classify_load(
        self, pending: int, old_tasks_percentage: Optional[float] = None
    ) -> LoadStatus:
        """
        Classify a member's load against the ideal load.

        ``old_tasks_percentage`` is only given by the flow-health dashboard,
        where a high share of old tasks also counts as overloaded.
        """
        ideal = self.settings.ideal_load
        if pending > ideal * self.settings.overload_factor:
            return "overloaded"
        if (
            old_tasks_percentage is not None
            and old_tasks_percentage > self.settings.stale_percentage_limit
        ):
            return "overloaded"
        if pending < ideal * self.settings.available_factor:
            return "available"
        return "balanced"

    def stagnation_threshold(self, resolution_days: Sequence[float]) -> float:
        """Twice the median resolution time, or the default without history."""
        median = lower_median(resolution_days)
        if median is None or median <= 0:
            return float(self.settings.default_stagnation_days)
        return median * 2

    # ------------------------------------------------------------------
    # Single pass
    # ------------------------------------------------------------------

    def _accumulate(
        self,
        tasks: Sequence[Task],
        now: datetime,
        members: Optional[Mapping[str, str]] = None,
    ) -> _Accumulation:
        """Classify each task on every axis exactly once."""
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")

        stale_cutoff = now - timedelta(days=self.settings.stale_after_days)
        completed_cutoff = months_before(now, self.settings.completed_window_months)

        acc = _Accumulation(
            stats=TeamStats(),
            members={
                user_id: _MemberTally(user_id=user_id, name=name)
                for user_id, name in (members or {}).items()
            },
            buckets=self.weekly_buckets(now),
            resolution_days=[],
            resolution_by_priority=defaultdict(list),
            tag_counts=Counter(),
            tagged_tasks=0,
            state_counts=Counter(),
            priority_counts=Counter(),
            ages_by_state=defaultdict(list),
            in_progress_tasks=[],
        )
        current_week = acc.buckets[-1]

        for task in tasks:
            # 1. Basic stats
            if not task.is_done:
                acc.stats.total += 1
                if task.due_date and task.due_date < now:
                    acc.stats.overdue += 1
                if task.is_in_progress:
                    acc.stats.in_progress += 1
            elif current_week.contains(task.updated_at):
                acc.stats.completed_this_week += 1

            # 2. Workload by assignee
            tally = self._member_tally(acc.members, task)
            if task.is_done:
                tally.completed += 1
            else:
                if task.is_in_progress:
                    tally.in_progress += 1
                tally.pending += 1
                if task.created_at < stale_cutoff:
                    tally.old_tasks += 1
                tally.tasks.append(task)

            # 3. Weekly trend
            for bucket in acc.buckets:
                if bucket.contains(task.created_at):
                    bucket.created += 1
                if task.is_done and bucket.contains(task.updated_at):
                    bucket.completed += 1

            # 4. Resolution time (completed window only)
            if task.is_done and task.updated_at and task.updated_at > completed_cutoff:
                days = whole_hours_as_days(task.created_at, task.updated_at)
                acc.resolution_days.append(days)
                acc.resolution_by_priority[task.priority].append(days)

            # 5. Tags
            if task.tags:
                acc.tagged_tasks += 1
                acc.tag_counts.update(task.tags)

            # 6. Distribution
            acc.state_counts[task.state] += 1
            acc.priority_counts[task.priority] += 1

            # 7. Open-task age per state, stagnation candidates
            if not task.state.is_terminal:
                acc.ages_by_state[task.state].append(elapsed_days(task.created_at, now))
            if task.is_in_progress:
                acc.in_progress_tasks.append(task)

        return acc

    def _member_tally(self, members: Dict[str, _MemberTally], task: Task) -> _MemberTally:
        if task.assignee_id and task.assignee_name:
            key, name = task.assignee_id, task.assignee_name
        else:
            key, name = UNASSIGNED_KEY, UNASSIGNED_NAME

        tally = members.get(key)
        if tally is None:
            tally = _MemberTally(user_id=key, name=name)
            members[key] = tally
        return tally

    # ------------------------------------------------------------------
    # Secondary passes
    # ------------------------------------------------------------------

    def _build_workload(
        self, members: Dict[str, _MemberTally], track_staleness: bool
    ) -> List[WorkloadEntry]:
        """Member workload, unassigned bucket excluded."""
        workload = []
        for key, tally in members.items():
            if key == UNASSIGNED_KEY:
                continue

            total = tally.pending + tally.completed
            entry = WorkloadEntry(
                user_id=tally.user_id,
                name=tally.name,
                pending=tally.pending,
                in_progress=tally.in_progress,
                completed=tally.completed,
                total=total,
                tasks=list(tally.tasks),
            )
            if track_staleness:
                entry.old_tasks = tally.old_tasks
                entry.old_tasks_percentage = (
                    tally.old_tasks / total * 100 if total > 0 else 0.0
                )
                entry.status = self.classify_load(
                    tally.pending, entry.old_tasks_percentage
                )
            else:
                entry.status = self.classify_load(tally.pending)
            workload.append(entry)

        if track_staleness:
            workload.sort(key=lambda w: w.old_tasks, reverse=True)
        else:
            workload.sort(key=lambda w: w.pending, reverse=True)
        return workload

    def _build_resolution_stats(self, acc: _Accumulation) -> ResolutionStats:
        median = lower_median(acc.resolution_days)
        by_priority = [
            PriorityResolution(priority=priority, days=mean(acc.resolution_by_priority[priority]))
            for priority in URGENCY_ORDER
            if acc.resolution_by_priority.get(priority)
        ]
        return ResolutionStats(
            average=mean(acc.resolution_days),
            median=median if median is not None else 0.0,
            sample_count=len(acc.resolution_days),
            by_priority=by_priority,
        )

    def _build_ranking(self, workload: List[WorkloadEntry]) -> List[RankingEntry]:
        """Top members by completed tasks."""
        finishers = sorted(
            (w for w in workload if w.completed > 0),
            key=lambda w: w.completed,
            reverse=True,
        )[: self.settings.ranking_limit]

        return [
            RankingEntry(
                rank=idx + 1,
                user_id=w.user_id,
                name=w.name,
                completed=w.completed,
                streak=placeholder_streak(w.completed),
            )
            for idx, w in enumerate(finishers)
        ]

    def _build_alerts(
        self, acc: _Accumulation, workload: List[WorkloadEntry]
    ) -> List[TeamAlert]:
        alerts = []

        if acc.stats.overdue > 0:
            alerts.append(
                TeamAlert(
                    type="overdue",
                    severity="critical",
                    message=f"{acc.stats.overdue} overdue tasks need attention.",
                    count=acc.stats.overdue,
                )
            )

        unassigned = acc.members.get(UNASSIGNED_KEY)
        unassigned_count = unassigned.pending if unassigned else 0
        if unassigned_count > self.settings.unassigned_alert_threshold:
            alerts.append(
                TeamAlert(
                    type="unassigned",
                    severity="warning",
                    message=f"{unassigned_count} unassigned tasks are waiting for an owner.",
                    count=unassigned_count,
                )
            )

        overloaded = next((w for w in workload if w.status == "overloaded"), None)
        if overloaded:
            alerts.append(
                TeamAlert(
                    type="overloaded",
                    severity="warning",
                    message=f"{overloaded.name} has {overloaded.pending} open tasks.",
                    count=overloaded.pending,
                )
            )

        return alerts

    def _build_distribution(self, acc: _Accumulation) -> Distribution:
        return Distribution(
            by_state=[
                DistributionSlice(name=state.value, value=acc.state_counts[state])
                for state in TaskState
                if acc.state_counts[state]
            ],
            by_priority=[
                DistributionSlice(name=priority.value, value=acc.priority_counts[priority])
                for priority in URGENCY_ORDER
                if acc.priority_counts[priority]
            ],
            by_tag=[
                DistributionSlice(name=tag, value=count)
                for tag, count in acc.tag_counts.most_common(DISTRIBUTION_TAG_LIMIT)
            ],
        )

    def _build_tag_focus(
        self, tag_counts: Counter, total_tasks: int
    ) -> List[TagFocusMetric]:
        if total_tasks == 0:
            return []
        metrics = [
            TagFocusMetric(tag=tag, count=count, percentage=count / total_tasks * 100)
            for tag, count in tag_counts.items()
        ]
        metrics.sort(key=lambda m: m.percentage, reverse=True)
        return metrics[: self.settings.tag_focus_limit]

    def _untagged_remainder(
        self, tag_metrics: List[TagFocusMetric], total_tasks: int
    ) -> Tuple[int, float]:
        """Tasks not covered by the top tags; negative when tags overlap."""
        untagged = total_tasks - sum(m.count for m in tag_metrics)
        if untagged < 0:
            logger.warning(
                f"Top tag counts exceed the task total by {-untagged}; "
                f"tasks carry several ranked tags"
            )
        percentage = untagged / total_tasks * 100 if total_tasks > 0 else 0.0
        return untagged, percentage

    def _build_stagnation_alerts(
        self, in_progress_tasks: List[Task], now: datetime, threshold: float
    ) -> List[StagnationAlert]:
        alerts = []
        for task in in_progress_tasks:
            state_change_date = task.updated_at or task.created_at
            days_since_change = elapsed_days(state_change_date, now)
            if days_since_change > threshold:
                alerts.append(
                    StagnationAlert(
                        task_id=task.id,
                        task_title=task.title,
                        assigned_to=task.assignee_name,
                        state_change_date=state_change_date,
                        days_since_change=math.floor(days_since_change),
                        threshold_exceeded=math.floor(days_since_change / threshold),
                    )
                )
        # sorted() is stable, ties keep input order
        return sorted(alerts, key=lambda a: a.threshold_exceeded, reverse=True)

    def _build_bottlenecks(
        self, ages_by_state: Dict[TaskState, List[float]]
    ) -> List[StateBottleneck]:
        bottlenecks = []
        for state, ages in ages_by_state.items():
            avg_days = mean(ages)
            median_days = lower_median(ages) or 0.0
            bottlenecks.append(
                StateBottleneck(
                    state=state.value,
                    avg_hours=avg_days * 24,
                    avg_days=avg_days,
                    median_hours=median_days * 24,
                    task_count=len(ages),
                    severity=bottleneck_severity(avg_days),
                )
            )
        bottlenecks.sort(key=lambda b: b.avg_days, reverse=True)
        return bottlenecks
