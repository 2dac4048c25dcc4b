"""Service modules for the telehealth reconciliation application."""

__all__ = [
    "reconciliation",
]
