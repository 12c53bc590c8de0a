"""
Ingestion boundary: raw task rows to normalized ``Task`` objects.

Task rows come from the ``tr_tareas`` table with Spanish column names and
free-text state/priority labels. Casing and spelling vary between rows
("En Progreso" vs "En progreso"), so labels are folded once here and the
aggregator only ever compares canonical enum members.
"""

import logging
import unicodedata
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from team_flow.core.store import Task, TaskPriority, TaskState

logger = logging.getLogger(__name__)

_STATE_ALIASES: Dict[str, TaskState] = {
    "pendiente": TaskState.PENDING,
    "pending": TaskState.PENDING,
    "todo": TaskState.PENDING,
    "to do": TaskState.PENDING,
    "en progreso": TaskState.IN_PROGRESS,
    "in progress": TaskState.IN_PROGRESS,
    "bloqueada": TaskState.BLOCKED,
    "pausada": TaskState.BLOCKED,
    "blocked": TaskState.BLOCKED,
    "paused": TaskState.BLOCKED,
    "terminada": TaskState.DONE,
    "hecha": TaskState.DONE,
    "done": TaskState.DONE,
    "completed": TaskState.DONE,
    "cancelada": TaskState.CANCELLED,
    "cancelled": TaskState.CANCELLED,
    "canceled": TaskState.CANCELLED,
}

_PRIORITY_ALIASES: Dict[str, TaskPriority] = {
    "baja": TaskPriority.LOW,
    "low": TaskPriority.LOW,
    "media": TaskPriority.MEDIUM,
    "medium": TaskPriority.MEDIUM,
    "alta": TaskPriority.HIGH,
    "high": TaskPriority.HIGH,
    "critica": TaskPriority.CRITICAL,
    "critical": TaskPriority.CRITICAL,
    "urgente": TaskPriority.URGENT,
    "urgent": TaskPriority.URGENT,
}


def _fold(label: str) -> str:
    """Lowercase, strip accents, and collapse '_', '-' and runs of spaces."""
    decomposed = unicodedata.normalize("NFKD", label)
    ascii_only = "".join(c for c in decomposed if not unicodedata.combining(c))
    spaced = ascii_only.replace("_", " ").replace("-", " ").lower()
    return " ".join(spaced.split())


def normalize_state(label: Optional[str]) -> TaskState:
    """
    Map a source state label to its canonical ``TaskState``.

    Unknown or missing labels are treated as pending rather than rejected.
    """
    if not label:
        return TaskState.PENDING
    state = _STATE_ALIASES.get(_fold(label))
    if state is None:
        logger.debug(f"Unknown task state '{label}', treating as pending")
        return TaskState.PENDING
    return state


def normalize_priority(label: Optional[str]) -> TaskPriority:
    """Map a source priority label to ``TaskPriority`` ('medium' by default)."""
    if not label:
        return TaskPriority.MEDIUM
    return _PRIORITY_ALIASES.get(_fold(label), TaskPriority.MEDIUM)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp or date to a timezone-aware datetime (naive = UTC)."""
    if not value:
        return None

    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, date):
        ts = datetime(value.year, value.month, value.day)
    else:
        try:
            ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _unique_tags(raw: Any) -> List[str]:
    if not raw or not isinstance(raw, (list, tuple)):
        return []
    seen: List[str] = []
    for tag in raw:
        tag = str(tag).strip() if tag else ""
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def task_from_row(
    row: Mapping[str, Any], names: Mapping[str, str]
) -> Optional[Task]:
    """
    Build a ``Task`` from a ``tr_tareas`` row.

    Parameters
    ----------
    row : Mapping[str, Any]
        Raw row (id, titulo, descripcion, estado, prioridad,
        fecha_vencimiento, asignado_id, creado_en, actualizado_en, tags)
    names : Mapping[str, str]
        Member id to display name lookup

    Returns
    -------
    Optional[Task]
        The normalized task, or None when the row has no usable creation
        timestamp
    """
    created_at = parse_timestamp(row.get("creado_en"))
    if created_at is None:
        logger.warning(f"Skipping task {row.get('id')}: missing or invalid creado_en")
        return None

    assignee_id = row.get("asignado_id")
    assignee_id = str(assignee_id) if assignee_id else None
    state_label = row.get("estado") or ""

    return Task(
        id=str(row.get("id", "")),
        title=row.get("titulo") or "",
        state=normalize_state(state_label),
        priority=normalize_priority(row.get("prioridad")),
        created_at=created_at,
        updated_at=parse_timestamp(row.get("actualizado_en")),
        due_date=parse_timestamp(row.get("fecha_vencimiento")),
        assignee_id=assignee_id,
        assignee_name=names.get(assignee_id) if assignee_id else None,
        tags=_unique_tags(row.get("tags")),
        description=row.get("descripcion") or "",
        state_label=state_label,
    )


def normalize_tasks(
    rows: Iterable[Mapping[str, Any]], names: Mapping[str, str]
) -> List[Task]:
    """Normalize every usable row, keeping source order."""
    tasks = []
    for row in rows:
        task = task_from_row(row, names)
        if task is not None:
            tasks.append(task)
    return tasks
