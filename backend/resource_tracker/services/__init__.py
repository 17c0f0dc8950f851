"""Services for probing, scheduling, storing, and alerting."""
from .probe import ProbeExecutor
from .schedule_registry import ScheduleRegistry
from .alerter import AlertDispatcher
from .store import ResourceStore
from .resource_manager import ResourceLifecycleManager

__all__ = ["ProbeExecutor", "ScheduleRegistry", "AlertDispatcher", "ResourceStore", "ResourceLifecycleManager"]
