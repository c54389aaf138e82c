"""Shared Pydantic schema base with camelCase aliases."""

from __future__ import annotations

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Every order, checkout and compliance schema inherits this for camelCase aliases."""

    model_config = {
        "populate_by_name": True,
        "alias_generator": to_camel,
        "from_attributes": True,
    }


class HealthResponse(CamelModel):
    """Returned by /health. ``outboxRunning`` is false when the worker is disabled."""

    status: str = "ok"
    app: str
    env: str
    order_number_test_mode: bool = False
    outbox_running: bool = False
