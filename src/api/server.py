"""HTTP API for managing reminders and inspecting the scheduler.

Authentication happens upstream; the authenticated caller's ID arrives in the
``X-User-Id`` header.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.app.reminder_app import ReminderApp
from src.models.reminder import (
    Reminder,
    ReminderCreate,
    ReminderPage,
    ReminderUpdate,
    SendStatus,
    SubscriptionStatus,
)
from src.reminders.errors import InvalidTransitionError, NoteNotFoundError, ReminderNotFoundError
from src.reminders.reminder_service import ReminderService
from src.utils.logger import log_error


class BatchDeleteRequest(BaseModel):
    reminder_ids: List[str] = Field(..., min_length=1, description="Reminders to delete")


class BatchDeleteResponse(BaseModel):
    deleted_count: int


def get_reminder_app(app: FastAPI) -> ReminderApp:
    reminder_app = getattr(app.state, "reminder_app", None)
    if reminder_app is None:
        raise RuntimeError("ReminderApp instance is not configured on the application state")
    return reminder_app


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id


def create_app(app_instance: ReminderApp | None = None) -> FastAPI:
    reminder_app = app_instance or ReminderApp()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.reminder_app = reminder_app
        await reminder_app.startup()
        try:
            yield
        finally:
            await reminder_app.shutdown()

    app = FastAPI(
        title="Journal Reminder API",
        version="1.0.0",
        description="REST API for journal note reminders and their delivery scheduler.",
        lifespan=lifespan,
    )

    def service() -> ReminderService:
        return get_reminder_app(app).service

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Invalid request parameters", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(ReminderNotFoundError)
    async def reminder_not_found_handler(request: Request, exc: ReminderNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "Reminder not found"})

    @app.exception_handler(NoteNotFoundError)
    async def note_not_found_handler(request: Request, exc: NoteNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": "Note not found or not accessible"},
        )

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.get("/reminders", response_model=ReminderPage)
    async def list_reminders_endpoint(
        page: int = 1,
        limit: int = 20,
        subscription_status: Optional[SubscriptionStatus] = None,
        send_status: Optional[SendStatus] = None,
        user_id: str = Depends(current_user_id),
    ) -> ReminderPage:
        if page < 1 or limit < 1 or limit > 100:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid pagination parameters")
        return await service().list_reminders(
            user_id,
            page=page,
            limit=limit,
            subscription_status=subscription_status,
            send_status=send_status,
        )

    @app.post("/reminders", response_model=Reminder, status_code=status.HTTP_201_CREATED)
    async def create_reminder_endpoint(
        payload: ReminderCreate,
        user_id: str = Depends(current_user_id),
    ) -> Reminder:
        return await service().create_reminder(user_id, payload)

    @app.post("/reminders/batch-delete", response_model=BatchDeleteResponse)
    async def batch_delete_endpoint(
        payload: BatchDeleteRequest,
        user_id: str = Depends(current_user_id),
    ) -> BatchDeleteResponse:
        deleted = await service().batch_delete(payload.reminder_ids, user_id)
        return BatchDeleteResponse(deleted_count=deleted)

    @app.get("/reminders/{reminder_id}", response_model=Reminder)
    async def get_reminder_endpoint(reminder_id: str, user_id: str = Depends(current_user_id)) -> Reminder:
        return await service().get_reminder(reminder_id, user_id)

    @app.put("/reminders/{reminder_id}", response_model=Reminder)
    async def update_reminder_endpoint(
        reminder_id: str,
        payload: ReminderUpdate,
        user_id: str = Depends(current_user_id),
    ) -> Reminder:
        return await service().update_reminder(reminder_id, user_id, payload)

    @app.delete("/reminders/{reminder_id}")
    async def delete_reminder_endpoint(reminder_id: str, user_id: str = Depends(current_user_id)) -> Dict[str, Any]:
        await service().delete_reminder(reminder_id, user_id)
        return {"deleted": True}

    @app.post("/reminders/{reminder_id}/subscribe", response_model=Reminder)
    async def subscribe_endpoint(reminder_id: str, user_id: str = Depends(current_user_id)) -> Reminder:
        return await service().subscribe(reminder_id, user_id)

    @app.post("/reminders/{reminder_id}/cancel", response_model=Reminder)
    async def cancel_endpoint(reminder_id: str, user_id: str = Depends(current_user_id)) -> Reminder:
        return await service().cancel(reminder_id, user_id)

    @app.post("/reminders/{reminder_id}/send")
    async def send_now_endpoint(reminder_id: str, user_id: str = Depends(current_user_id)) -> Dict[str, Any]:
        await service().get_reminder(reminder_id, user_id)
        sent = await get_reminder_app(app).scheduler.send_now(reminder_id)
        return {"sent": sent}

    @app.get("/scheduler/status")
    async def scheduler_status_endpoint() -> Dict[str, Any]:
        return get_reminder_app(app).get_scheduler_status()

    @app.get("/health")
    async def health_endpoint() -> Dict[str, Any]:
        try:
            return get_reminder_app(app).snapshot()
        except Exception as exc:  # pragma: no cover
            log_error(f"Failed to build health snapshot: {exc}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to fetch health snapshot: {exc}",
            ) from exc

    return app


app = create_app()
