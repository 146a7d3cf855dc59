"""Core HR module — the Employee root entity and its bootstrap service."""

from staffhub.core_hr.models import Employee

__all__ = ["Employee"]
