"""Evaluation Context — ephemeral input to one evaluation cycle."""

import logging
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from proactive_kernel.models.business import BusinessEvent

logger = logging.getLogger(__name__)


class PendingActionEntities(BaseModel):
    """Entities extracted for an action awaiting safety validation."""

    model_config = ConfigDict(extra="ignore")

    needs_reference: bool = False           # Refers to "that customer", "him", ...
    resolved: bool = False                  # Reference was resolved to a record
    amount: Optional[float] = None
    confirmed: bool = False
    person: Optional[str] = None
    person_resolved: bool = False


class PendingAction(BaseModel):
    """An action the user asked for that has not been carried out yet."""

    model_config = ConfigDict(extra="ignore")

    action: str                             # e.g., "LOG_TIP", "DRAFT_SMS"
    request_id: Optional[str] = None        # Identity of this attempt, if the caller has one
    entities: PendingActionEntities = PendingActionEntities()


class EvaluationContext(BaseModel):
    """Not persisted. Constructed fresh for every evaluation."""

    model_config = ConfigDict(extra="ignore")

    command: Optional[str] = None
    pending_action: Optional[PendingAction] = None
    recent_events: List[BusinessEvent] = []

    @classmethod
    def coerce(
        cls, raw: Union["EvaluationContext", Mapping[str, Any], None]
    ) -> "EvaluationContext":
        """
        Build a context from whatever the caller passed.

        Fields that fail validation are dropped rather than raised, so a
        malformed context degrades to "absent" for the triggers reading it.
        """
        if raw is None:
            return cls()
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, Mapping):
            logger.warning("Ignoring non-mapping evaluation context: %r", type(raw))
            return cls()

        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            logger.warning("Malformed evaluation context, dropping bad fields: %s", e)
            bad_fields = {err["loc"][0] for err in e.errors() if err["loc"]}

        kept = {k: v for k, v in raw.items() if k not in bad_fields}
        try:
            return cls.model_validate(kept)
        except ValidationError:
            return cls()
