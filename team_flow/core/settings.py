"""
Configuration for the analytics service.

Thresholds and server options come from ``config.json`` at the repository
root (``analytics`` and ``backend`` sections). Supabase credentials are read
from the ``SUPABASE_URL`` / ``SUPABASE_KEY`` environment variables, which take
precedence over anything in the file.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config.json"


@dataclass
class AnalyticsSettings:
    """
    Tunable thresholds for both dashboards.

    Parameters
    ----------
    ideal_load : int
        Target open-task count per member (classification only)
    overload_factor : float
        Pending above ``ideal_load * overload_factor`` is overloaded
    available_factor : float
        Pending below ``ideal_load * available_factor`` is available
    stale_after_days : int
        Open tasks older than this count as old in the flow-health view
    stale_percentage_limit : float
        Old-task share (0-100) above which a member is overloaded
    completed_window_months : int
        Completed tasks older than this are excluded from the analysis
    default_stagnation_days : float
        Stagnation threshold when there is no resolution history
    week_starts_on : int
        First day of the week, ``datetime.weekday()`` numbering (0 = Monday)
    tag_focus_limit : int
        Number of tags kept in the focus ranking
    ranking_limit : int
        Number of members kept in the productivity ranking
    unassigned_alert_threshold : int
        Unassigned open tasks above this raise a team alert
    task_fetch_limit : int
        Maximum task rows fetched per organization
    cache_ttl_seconds : int
        Lifetime of cached snapshot dictionaries in the API
    """

    ideal_load: int = 8
    overload_factor: float = 1.5
    available_factor: float = 0.5
    stale_after_days: int = 7
    stale_percentage_limit: float = 30.0
    completed_window_months: int = 3
    default_stagnation_days: float = 7.0
    week_starts_on: int = 0
    tag_focus_limit: int = 8
    ranking_limit: int = 5
    unassigned_alert_threshold: int = 5
    task_fetch_limit: int = 1000
    cache_ttl_seconds: int = 60

    # Connection and server options
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    port: int = 4301

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalyticsSettings":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown analytics settings: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})


def load_settings(path: Optional[Union[str, Path]] = None) -> AnalyticsSettings:
    """
    Load settings from ``config.json`` and the environment.

    Parameters
    ----------
    path : Optional[Union[str, Path]]
        Config file to read. Defaults to ``config.json`` at the repository root.

    Returns
    -------
    AnalyticsSettings
        Settings with file values applied over the defaults
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    data: Dict[str, Any] = {}

    try:
        with open(config_path, "r") as f:
            config = json.load(f)
        data.update(config.get("analytics", {}))
        port = config.get("backend", {}).get("port")
        if port:
            data["port"] = port
        logger.info(f"Loaded settings from {config_path}")
    except FileNotFoundError:
        logger.info(f"No config file at {config_path}, using defaults")
    except (json.JSONDecodeError, OSError, AttributeError) as e:
        logger.warning(f"Could not load {config_path}: {e}, using defaults")

    settings = AnalyticsSettings.from_dict(data)

    env_url = os.getenv("SUPABASE_URL")
    env_key = os.getenv("SUPABASE_KEY")
    if env_url:
        settings.supabase_url = env_url
    if env_key:
        settings.supabase_key = env_key

    return settings
