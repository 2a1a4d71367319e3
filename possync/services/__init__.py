"""Sync engine services: capture, catalog mirror, upload, conflicts, orchestration."""
