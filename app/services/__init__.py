"""Services package — all business logic lives here, never in routers.

Files:
  compliance.py  — hold decision (FFL on file, rolling-window firearm limit) and policy admin
  checkout.py    — checkout orchestrator: compliance → capture → persist → enqueue side tasks
  outbox.py      — OutboxWorker executing distributor / CRM side tasks with retries
  minting.py     — shipping-outcome vocabulary and mint-once order numbers
  snapshot.py    — order snapshot write and validated, self-repairing summary read
  orders.py      — order queries, FFL attach/verify, admin hold override, staff status changes

Rule: routers call services, services call repositories, repositories call the DB.
      No SQLAlchemy queries in routers. No FastAPI imports in services.
"""
