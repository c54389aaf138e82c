"""Routers package — HTTP endpoint definitions.

Files:
  dependencies.py  — collaborators and outbox worker from app.state
  v1/              — Versioned API routes (/api/v1/*)
"""
