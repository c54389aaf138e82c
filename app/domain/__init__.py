"""Domain package — all ORM models are imported here so Alembic autogenerate detects them.

Folder intent:
  order.py       — Order, OrderLine, OrderNote and the order status machine
  compliance.py  — Append-only firearms compliance policy rows
  snapshot.py    — Order snapshots, minted order numbers, sequence counters
  outbox.py      — Durable side-task outbox (distributor submission, CRM sync)
  user.py        — Customer accounts and FFL dealers
  product.py     — Catalog products used for firearm flags and enrichment
  audit.py       — Immutable audit trail (never updated or deleted)
  mixins.py      — Shared TimestampMixin, CreatedAtMixin, TenantMixin
"""

from app.domain.audit import AuditTrail
from app.domain.compliance import ComplianceConfig
from app.domain.order import Order, OrderLine, OrderNote
from app.domain.outbox import OutboxTask
from app.domain.product import Product
from app.domain.snapshot import MintedOrderNumber, OrderSnapshot, SequenceCounter
from app.domain.user import FFLDealer, User

__all__ = [
    "AuditTrail",
    "ComplianceConfig",
    "FFLDealer",
    "MintedOrderNumber",
    "Order",
    "OrderLine",
    "OrderNote",
    "OrderSnapshot",
    "OutboxTask",
    "Product",
    "SequenceCounter",
    "User",
]
