"""v1 router package — all /api/v1/* endpoints live here.

Files:
  checkout.py    — POST /checkout
  orders.py      — staff order views, FFL attach/verify, hold override, status changes
  snapshots.py   — order snapshot write and summary read
  compliance.py  — compliance policy admin and dry-run checks

Rule: Routers only handle HTTP (request parsing, response shaping).
      All business logic delegates to app/services/.
"""
