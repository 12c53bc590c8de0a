"""
Task data access over the Supabase (PostgREST) API.

Reads tasks and member names for one organization and performs the bulk
reassignment mutation. Row-level security, soft deletes and the schema
itself live in the database; this module only issues the queries.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from supabase import Client, create_client

from team_flow.core.normalize import normalize_state, parse_timestamp
from team_flow.core.settings import AnalyticsSettings
from team_flow.core.store import TaskState

logger = logging.getLogger(__name__)

TASKS_TABLE = "tr_tareas"
MEMBERS_TABLE = "config_organizacion_miembros"
TASK_COLUMNS = (
    "id, titulo, descripcion, estado, prioridad, fecha_vencimiento, "
    "asignado_id, creado_en, actualizado_en, tags"
)


class RepositoryError(Exception):
    """Raised when the backing store cannot be read."""


@dataclass
class ReassignResult:
    success: bool
    count: int
    message: Optional[str] = None


class TaskRepository:
    """Supabase-backed source of task rows and member names."""

    def __init__(self, client: Client, fetch_limit: int = 1000):
        self.client = client
        self.fetch_limit = fetch_limit

    @classmethod
    def from_settings(cls, settings: AnalyticsSettings) -> "TaskRepository":
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be configured")
        client = create_client(settings.supabase_url, settings.supabase_key)
        logger.info(f"Connected task repository to {settings.supabase_url}")
        return cls(client, fetch_limit=settings.task_fetch_limit)

    def resolve_organization_id(self, user_id: str) -> Optional[str]:
        """
        Find the organization a user belongs to.

        Returns None when the user has no active membership.
        """
        try:
            response = (
                self.client.table(MEMBERS_TABLE)
                .select("organization_id")
                .eq("user_id", user_id)
                .is_("eliminado_en", "null")
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise RepositoryError(f"Error resolving organization for {user_id}: {e}") from e

        rows = response.data or []
        if not rows or not rows[0].get("organization_id"):
            logger.info(f"No organization found for user {user_id}")
            return None
        return str(rows[0]["organization_id"])

    def fetch_tasks(
        self, organization_id: str, completed_cutoff: datetime
    ) -> List[Dict[str, Any]]:
        """
        Fetch the non-deleted task rows of an organization.

        Parameters
        ----------
        organization_id : str
            Organization to read
        completed_cutoff : datetime
            Done tasks last updated before this moment are dropped

        Returns
        -------
        List[Dict[str, Any]]
            Raw rows, newest first
        """
        try:
            response = (
                self.client.table(TASKS_TABLE)
                .select(TASK_COLUMNS)
                .eq("organizacion_id", organization_id)
                .is_("eliminado_en", "null")
                .order("creado_en", desc=True)
                .limit(self.fetch_limit)
                .execute()
            )
        except Exception as e:
            raise RepositoryError(f"Error fetching tasks for {organization_id}: {e}") from e

        rows = response.data or []
        # PostgREST cannot express "not done OR updated after" cleanly
        filtered = [row for row in rows if _within_completed_window(row, completed_cutoff)]
        logger.info(
            f"Fetched {len(rows)} tasks for org {organization_id}, "
            f"{len(filtered)} within completed window"
        )
        return filtered

    def fetch_assignee_names(self, organization_id: str) -> Dict[str, str]:
        """Map member user ids to display names for non-deleted members."""
        try:
            response = (
                self.client.table(MEMBERS_TABLE)
                .select("user_id, nombre_completo")
                .eq("organization_id", organization_id)
                .is_("eliminado_en", "null")
                .execute()
            )
        except Exception as e:
            raise RepositoryError(f"Error fetching members for {organization_id}: {e}") from e

        names = {}
        for row in response.data or []:
            user_id = row.get("user_id")
            name = row.get("nombre_completo")
            if user_id and name:
                names[str(user_id)] = name
        return names

    def reassign_tasks(
        self, task_ids: Sequence[str], new_assignee_id: str
    ) -> ReassignResult:
        """Assign every task in ``task_ids`` to ``new_assignee_id`` in one update."""
        ids = list(task_ids)
        try:
            (
                self.client.table(TASKS_TABLE)
                .update({"asignado_id": new_assignee_id})
                .in_("id", ids)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error reassigning {len(ids)} tasks to {new_assignee_id}: {e}")
            return ReassignResult(success=False, count=0, message=str(e))

        logger.info(f"Reassigned {len(ids)} tasks to {new_assignee_id}")
        return ReassignResult(success=True, count=len(ids))


def _within_completed_window(row: Dict[str, Any], cutoff: datetime) -> bool:
    if normalize_state(row.get("estado")) is not TaskState.DONE:
        return True
    updated_at = parse_timestamp(row.get("actualizado_en"))
    if updated_at is None:
        return True
    return updated_at >= cutoff
