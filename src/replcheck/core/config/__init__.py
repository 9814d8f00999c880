"""Run configuration: validated settings and the enums they are built from.

Quick start::

    from replcheck.core.config import get_settings

    settings = get_settings()
    print(settings.isolation)          # Isolation.SERIALIZABLE
    print(settings.test_name())        # "list-append S (Strong-1SR)"

Architecture::

    settings.py       HarnessSettings (Pydantic) + get_settings() cache
    components.py     Workload / isolation / locking / strategy enums
"""

from .components import (
    SHORT_NAMES,
    ConsistencyModel,
    Isolation,
    LockingMode,
    WorkloadName,
    WriteStrategy,
)
from .settings import HarnessSettings, clear_settings_cache, get_settings

__all__ = [
    "SHORT_NAMES",
    "ConsistencyModel",
    "Isolation",
    "LockingMode",
    "WorkloadName",
    "WriteStrategy",
    "HarnessSettings",
    "clear_settings_cache",
    "get_settings",
]
