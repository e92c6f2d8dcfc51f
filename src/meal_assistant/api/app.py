"""FastAPI application factory."""

import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime

from fastapi import FastAPI, Header, HTTPException, Request, status

from meal_assistant.api.models import EntryPatchRequest, LogMealRequest
from meal_assistant.app_logging import configure_logging
from meal_assistant.containers import AppContainer
from meal_assistant.domain.meals import MealEntryRecord, confidence_label

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DEFAULT_SESSION_ID = "default"


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/agent/log-meal")
    async def log_meal(
        payload: LogMealRequest,
        request: Request,
        x_session_id: str | None = Header(default=None),
    ) -> dict[str, object]:
        """Run one conversational turn."""
        state_container: AppContainer = request.app.state.container
        if not payload.text.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing text. Send a meal description in English.",
            )
        session_id = payload.context.session_id or x_session_id or DEFAULT_SESSION_ID
        agent_request = payload.to_agent_request(session_id)

        if state_container.settings.agent_enabled:
            result = await state_container.agent.process_turn(agent_request)
        else:
            result = await state_container.draft_log_service.quick_log(
                agent_request.text, agent_request.active_meal_id
            )
        logger.info(
            "Turn finished: session=%s action=%s ok=%s",
            session_id,
            result.action,
            result.ok,
        )

        now = state_container.clock.now()
        envelope = asdict(result.envelope)
        return {
            **envelope,
            "date": now.date,
            "time": now.time,
            "timezone": now.timezone,
            "action": result.action,
            "active_meal_id": result.active_meal_id,
            "normalized_draft": _optional_asdict(result.normalized_draft),
            "meal_summary": _optional_asdict(result.meal_summary),
            "meals": (
                [asdict(meal) for meal in result.meals]
                if result.meals is not None
                else None
            ),
            "saved_meal_id": result.saved_meal_id,
            "saved_entry_ids": result.saved_entry_ids,
        }

    @app.get("/day-summary")
    async def day_summary(
        request: Request, date: str | None = None
    ) -> dict[str, object]:
        """Return totals and entries for a calendar day."""
        state_container: AppContainer = request.app.state.container
        if date is None or not _is_valid_iso_date(date):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing or invalid date. Use ?date=YYYY-MM-DD",
            )
        summary = state_container.meal_log_service.summarize_day(date)
        return {
            "ok": True,
            "date": summary.date,
            "totals": asdict(summary.totals),
            "entry_count": len(summary.entries),
            "entries": [_entry_payload(entry) for entry in summary.entries],
        }

    @app.patch("/entries/{entry_id}")
    async def patch_entry(
        entry_id: int, payload: EntryPatchRequest, request: Request
    ) -> dict[str, object]:
        """Apply a manual correction to an entry."""
        state_container: AppContainer = request.app.state.container
        changes = payload.changes()
        if not changes:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No valid fields provided for update.",
            )
        try:
            updated = state_container.meal_log_service.update_entry(entry_id, changes)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
            ) from exc
        if updated is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found."
            )
        return {"ok": True, "entry": _entry_payload(updated)}

    return app


def _is_valid_iso_date(value: str) -> bool:
    """Check a YYYY-MM-DD calendar date."""
    if not _ISO_DATE_RE.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")  # noqa: DTZ007
    except ValueError:
        return False
    return True


def _optional_asdict(value: object | None) -> dict[str, object] | None:
    if value is None:
        return None
    return asdict(value)


def _entry_payload(entry: MealEntryRecord) -> dict[str, object]:
    return {
        "id": entry.id,
        "meal_id": entry.meal_id,
        "item": entry.item,
        "amount_grams": entry.amount_grams,
        "kcal": entry.kcal,
        "protein_g": entry.protein_g,
        "carbs_g": entry.carbs_g,
        "fat_g": entry.fat_g,
        "local_time": entry.local_time,
        "source": entry.source,
        "confidence": entry.confidence,
        "confidence_label": confidence_label(entry.confidence),
        "provenance": entry.provenance.to_dict(),
    }
