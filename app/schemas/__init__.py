"""Pydantic schemas package.

Folder intent:
  common.py      — CamelModel base + HealthResponse (all schemas inherit CamelModel)
  compliance.py  — cart items, compliance decisions and policy config
  checkout.py    — checkout request / result
  order.py       — staff order views and hold-resolution requests
  snapshot.py    — snapshot write body, minted numbers and the summary view
"""
