"""Background workers for Hookshot."""

from .scheduler import MaintenanceScheduler, MaintenanceTask

__all__ = ["MaintenanceScheduler", "MaintenanceTask"]
