"""Shared worker core: service identity and small utilities."""
from __future__ import annotations

SERVICE_NAME = "seat-worker"
