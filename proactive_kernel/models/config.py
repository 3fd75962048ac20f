"""Rule Engine and Delivery Controller configuration."""

from typing import Dict, List

from pydantic import BaseModel, Field

from proactive_kernel.models.interruption import SummaryType


class EngineConfig(BaseModel):
    """Thresholds and windows used by the Trigger Set and cooldown ledger."""

    cooldown_seconds: int = 3600
    trigger_timeout_seconds: float = 5.0

    # Unsafe pending actions
    large_amount_threshold: float = 500
    messaging_actions: List[str] = ["DRAFT_SMS"]

    aging_debt_days: int = 3
    blocking_job_threshold: int = 2
    uncollected_job_days: int = 4
    recent_event_scan: int = 5

    # Hour windows are cron expressions; any minute matching counts as inside.
    closeout_schedule: str = "* 18 * * *"
    closeout_commands: List[str] = ["closeout", "end day"]

    pattern_window_days: int = 30
    pattern_threshold: int = 3
    issue_event_type: str = "supplier_issue"

    quiet_window_schedule: str = "* 10-16 * * *"
    quiet_day_probability: float = Field(ge=0.0, le=1.0, default=0.1)

    summary_commands: Dict[str, SummaryType] = {
        "how much did i make": SummaryType.TIPS,
        "who owes me money": SummaryType.DEBTS,
        "what's still open": SummaryType.OPEN_REPAIRS,
        "what do i have to do": SummaryType.TASKS,
    }


class ControllerConfig(BaseModel):
    """Configuration for the Delivery Controller and its scheduler."""

    evaluation_interval_seconds: float = 60
    recent_event_limit: int = 10
    dispatch_timeout_seconds: float = 10.0
