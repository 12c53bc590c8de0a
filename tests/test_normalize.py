"""Tests for row ingestion and label normalization."""

from datetime import datetime, timezone

import pytest

from team_flow.core.normalize import (
    normalize_priority,
    normalize_state,
    normalize_tasks,
    parse_timestamp,
    task_from_row,
)
from team_flow.core.store import TaskPriority, TaskState


@pytest.fixture
def row():
    return {
        "id": "t-1",
        "titulo": "Renovar cuota",
        "descripcion": "Socio 1234",
        "estado": "En Progreso",
        "prioridad": "Alta",
        "fecha_vencimiento": "2025-11-20",
        "asignado_id": "u-1",
        "creado_en": "2025-11-01T10:00:00Z",
        "actualizado_en": "2025-11-05T12:00:00+00:00",
        "tags": ["cobranza", "socios", "cobranza"],
    }


class TestNormalizeState:
    @pytest.mark.parametrize("label", ["En Progreso", "En progreso", "en_progreso", " EN  PROGRESO "])
    def test_in_progress_casings_are_equivalent(self, label):
        assert normalize_state(label) is TaskState.IN_PROGRESS

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("Pendiente", TaskState.PENDING),
            ("Bloqueada", TaskState.BLOCKED),
            ("Pausada", TaskState.BLOCKED),
            ("Terminada", TaskState.DONE),
            ("Hecha", TaskState.DONE),
            ("Cancelada", TaskState.CANCELLED),
            ("done", TaskState.DONE),
        ],
    )
    def test_known_labels(self, label, expected):
        assert normalize_state(label) is expected

    def test_unknown_and_missing_fall_back_to_pending(self):
        assert normalize_state("Archivada") is TaskState.PENDING
        assert normalize_state(None) is TaskState.PENDING


class TestNormalizePriority:
    def test_accented_critical(self):
        assert normalize_priority("Crítica") is TaskPriority.CRITICAL
        assert normalize_priority("Critica") is TaskPriority.CRITICAL

    def test_missing_and_unknown_default_to_medium(self):
        assert normalize_priority(None) is TaskPriority.MEDIUM
        assert normalize_priority("Altísima") is TaskPriority.MEDIUM

    def test_urgent(self):
        assert normalize_priority("Urgente") is TaskPriority.URGENT


class TestParseTimestamp:
    def test_zulu_suffix(self):
        assert parse_timestamp("2025-11-01T10:00:00Z") == datetime(
            2025, 11, 1, 10, tzinfo=timezone.utc
        )

    def test_naive_is_utc(self):
        assert parse_timestamp("2025-11-01T10:00:00").tzinfo == timezone.utc

    def test_five_digit_fraction(self):
        # PostgREST trims trailing zeros from fractional seconds
        assert parse_timestamp("2025-11-10T09:15:02.12345+00:00") == datetime(
            2025, 11, 10, 9, 15, 2, 123450, tzinfo=timezone.utc
        )

    def test_row_with_trimmed_fraction_is_kept(self, row):
        row["creado_en"] = "2025-11-10T09:15:02.1+00:00"
        row["actualizado_en"] = "2025-11-11T10:00:00.12345Z"
        task = task_from_row(row, {})
        assert task is not None
        assert task.updated_at == datetime(2025, 11, 11, 10, 0, 0, 123450, tzinfo=timezone.utc)

    def test_date_only(self):
        assert parse_timestamp("2025-11-20") == datetime(2025, 11, 20, tzinfo=timezone.utc)

    def test_garbage_is_none(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None


class TestTaskFromRow:
    def test_maps_all_fields(self, row):
        task = task_from_row(row, {"u-1": "Ana Pérez"})

        assert task.id == "t-1"
        assert task.title == "Renovar cuota"
        assert task.state is TaskState.IN_PROGRESS
        assert task.state_label == "En Progreso"
        assert task.priority is TaskPriority.HIGH
        assert task.assignee_name == "Ana Pérez"
        assert task.due_date == datetime(2025, 11, 20, tzinfo=timezone.utc)
        assert task.tags == ["cobranza", "socios"]

    def test_unknown_assignee_has_no_name(self, row):
        task = task_from_row(row, {})
        assert task.assignee_id == "u-1"
        assert task.assignee_name is None

    def test_row_without_creation_time_is_skipped(self, row):
        row["creado_en"] = None
        assert task_from_row(row, {}) is None

    def test_normalize_tasks_keeps_order_and_skips_bad_rows(self, row):
        second = dict(row, id="t-2")
        broken = dict(row, id="t-3", creado_en="??")
        tasks = normalize_tasks([second, broken, row], {})
        assert [t.id for t in tasks] == ["t-2", "t-1"]
