"""Core HR module — Company and Employee models."""

from hrops.core_hr.models import Company, Employee

__all__ = ["Company", "Employee"]
