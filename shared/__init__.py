"""Shared building blocks for the telehealth reconciliation service."""
