"""Shared FastAPI dependencies for collaborators built in the application lifespan."""

from __future__ import annotations

from fastapi import Request

from app.integrations import Collaborators
from app.services.outbox import OutboxWorker


def get_collaborators(request: Request) -> Collaborators:
    return request.app.state.collaborators


def get_outbox_worker(request: Request) -> OutboxWorker | None:
    return getattr(request.app.state, "outbox_worker", None)
