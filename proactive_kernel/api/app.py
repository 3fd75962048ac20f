"""
Proactive Kernel API — FastAPI endpoints.

Exposes the kernel to the surrounding application for:
- Business-state ingestion (in-memory reader, for testing/manual use)
- On-demand evaluation, summary commands and inline safety checks
- Interruption acknowledgement
- Monitoring control
- Audit log queries
- Engine configuration
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from proactive_kernel.audit.store import AuditLogStore
from proactive_kernel.engine.registry import SubjectRegistry
from proactive_kernel.logging_config import setup_logging
from proactive_kernel.models.business import (
    BusinessEvent,
    Debt,
    DebtDirection,
    Job,
    JobStatus,
    Reminder,
)
from proactive_kernel.models.config import ControllerConfig, EngineConfig
from proactive_kernel.models.context import PendingAction
from proactive_kernel.state.reader import InMemoryStateReader


# --- Request/Response Models ---

class ReminderIngestRequest(BaseModel):
    id: Optional[str] = None
    message: str
    remind_at: datetime


class DebtIngestRequest(BaseModel):
    id: Optional[str] = None
    person: str
    amount: float
    direction: DebtDirection = DebtDirection.OWED_TO_ME
    created_at: Optional[datetime] = None
    resolved: bool = False


class JobIngestRequest(BaseModel):
    id: Optional[str] = None
    device_type: str
    status: JobStatus = JobStatus.INTAKE
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None


class EventIngestRequest(BaseModel):
    id: Optional[str] = None
    event_type: str
    created_at: Optional[datetime] = None
    amount: Optional[float] = None
    caller: Optional[str] = None
    supplier: Optional[str] = None
    note: Optional[str] = None


class EvaluateRequest(BaseModel):
    context: dict = {}


class CommandRequest(BaseModel):
    command: str


class InterruptionResponseRequest(BaseModel):
    response: str


class EnabledRequest(BaseModel):
    enabled: bool


# --- Application Factory ---

def create_app(
    registry: Optional[SubjectRegistry] = None,
    audit_store: Optional[AuditLogStore] = None,
    engine_config: Optional[EngineConfig] = None,
    controller_config: Optional[ControllerConfig] = None,
    configure_logging: bool = False,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    reg = registry or SubjectRegistry(
        audit_store=audit_store,
        engine_config=engine_config,
        controller_config=controller_config,
    )
    audit = reg.audit_store

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logging:
            setup_logging()
        yield
        await reg.stop_all()

    app = FastAPI(
        title="Proactive Kernel API",
        description="Proactive notification rule engine",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store components on app state for access in endpoints
    app.state.registry = reg
    app.state.audit_store = audit

    def _memory_reader(subject_id: str) -> InMemoryStateReader:
        reader = reg.engine_for(subject_id).reader
        if not isinstance(reader, InMemoryStateReader):
            raise HTTPException(409, "Subject state is not ingestible through the API")
        return reader

    def _require_subject(subject_id: str) -> None:
        if not reg.has_subject(subject_id):
            raise HTTPException(404, "Subject not found")

    def _new_id(prefix: str) -> str:
        return f"{prefix}_{uuid4().hex[:12]}"

    # === BUSINESS STATE ===

    @app.post("/subjects/{subject_id}/reminders")
    def ingest_reminder(subject_id: str, req: ReminderIngestRequest):
        reminder = Reminder(
            id=req.id or _new_id("rem"),
            message=req.message,
            remind_at=req.remind_at,
        )
        _memory_reader(subject_id).upsert_reminder(reminder)
        return {"status": "ingested", "id": reminder.id}

    @app.post("/subjects/{subject_id}/debts")
    def ingest_debt(subject_id: str, req: DebtIngestRequest):
        debt = Debt(
            id=req.id or _new_id("debt"),
            person=req.person,
            amount=req.amount,
            direction=req.direction,
            created_at=req.created_at or reg.clock.now(),
            resolved=req.resolved,
        )
        _memory_reader(subject_id).upsert_debt(debt)
        return {"status": "ingested", "id": debt.id}

    @app.post("/subjects/{subject_id}/jobs")
    def ingest_job(subject_id: str, req: JobIngestRequest):
        job = Job(
            id=req.id or _new_id("job"),
            device_type=req.device_type,
            status=req.status,
            created_at=req.created_at or reg.clock.now(),
            completed_at=req.completed_at,
            customer_name=req.customer_name,
            customer_phone=req.customer_phone,
        )
        _memory_reader(subject_id).upsert_job(job)
        return {"status": "ingested", "id": job.id}

    @app.post("/subjects/{subject_id}/events")
    def ingest_event(subject_id: str, req: EventIngestRequest):
        event = BusinessEvent(
            id=req.id or _new_id("evt"),
            event_type=req.event_type,
            created_at=req.created_at or reg.clock.now(),
            amount=req.amount,
            caller=req.caller,
            supplier=req.supplier,
            note=req.note,
        )
        _memory_reader(subject_id).record_event(event)
        return {"status": "ingested", "id": event.id}

    # === EVALUATION ===

    @app.post("/subjects/{subject_id}/evaluate")
    async def evaluate(subject_id: str, req: EvaluateRequest):
        """Run one evaluation cycle and deliver its result, if any."""
        interruption = await reg.controller_for(subject_id).evaluate_interruptions(req.context)
        return {
            "interruption": interruption.model_dump(mode="json") if interruption else None
        }

    @app.post("/subjects/{subject_id}/commands")
    async def handle_command(subject_id: str, req: CommandRequest):
        """Answer an on-demand summary request."""
        interruption = await reg.controller_for(subject_id).handle_user_command(req.command)
        return {
            "interruption": interruption.model_dump(mode="json") if interruption else None
        }

    @app.post("/subjects/{subject_id}/pending-actions")
    async def check_pending_action(subject_id: str, req: PendingAction):
        """Inline safety check before an action runs."""
        interruption = await reg.controller_for(subject_id).check_real_time_event(req)
        return {
            "blocked": bool(interruption and interruption.blocking),
            "interruption": interruption.model_dump(mode="json") if interruption else None,
        }

    # === INTERRUPTIONS ===

    @app.get("/subjects/{subject_id}/interruptions/active")
    def active_interruptions(subject_id: str):
        """Delivered interruptions not yet acknowledged."""
        _require_subject(subject_id)
        return sorted(reg.engine_for(subject_id).active_interruptions)

    @app.post("/subjects/{subject_id}/interruptions/{interruption_id}/response")
    async def respond(subject_id: str, interruption_id: str, req: InterruptionResponseRequest):
        """User replied to an interruption."""
        _require_subject(subject_id)
        await reg.controller_for(subject_id).handle_interruption_response(
            interruption_id, req.response
        )
        return {"status": "handled", "interruption_id": interruption_id}

    # === MONITORING ===

    @app.get("/subjects")
    def list_subjects():
        return reg.subjects()

    @app.get("/subjects/{subject_id}/status")
    def subject_status(subject_id: str):
        _require_subject(subject_id)
        controller = reg.controller_for(subject_id)
        engine = controller.engine
        return {
            "subject_id": subject_id,
            "state": controller.state.value,
            "enabled": controller.enabled,
            "monitoring": controller.monitoring,
            "ticks": controller.tick_count,
            "active_interruptions": len(engine.active_interruptions),
            "cooldown_entries": len(engine.ledger),
            "last_interruption_id": (
                controller.last_interruption.id if controller.last_interruption else None
            ),
        }

    @app.post("/subjects/{subject_id}/monitoring/start")
    async def start_monitoring(subject_id: str):
        await reg.controller_for(subject_id).start()
        return {"status": "running", "subject_id": subject_id}

    @app.post("/subjects/{subject_id}/monitoring/stop")
    async def stop_monitoring(subject_id: str):
        _require_subject(subject_id)
        await reg.controller_for(subject_id).stop()
        return {"status": "stopped", "subject_id": subject_id}

    @app.put("/subjects/{subject_id}/enabled")
    def set_enabled(subject_id: str, req: EnabledRequest):
        reg.controller_for(subject_id).set_enabled(req.enabled)
        return {"subject_id": subject_id, "enabled": req.enabled}

    # === AUDIT ===

    @app.get("/audit")
    def get_audit(limit: int = 50, subject_id: Optional[str] = None):
        """Recent audit records, optionally for one subject."""
        if subject_id:
            records = audit.query_by_subject(subject_id)[-limit:]
        else:
            records = audit.query_recent(limit=limit)
        return [r.model_dump(mode="json") for r in records]

    @app.get("/audit/verify")
    def verify_audit():
        """Verify chain integrity."""
        return {
            "integrity_valid": audit.verify_chain_integrity(),
            "total_records": audit.count(),
        }

    # === CONFIG ===

    @app.get("/config/engine")
    def get_engine_config():
        return reg.engine_config.model_dump(mode="json")

    @app.put("/config/engine")
    def update_engine_config(config: EngineConfig):
        reg.update_engine_config(config)
        return config.model_dump(mode="json")

    return app


# Default application instance
app = create_app(configure_logging=True)
