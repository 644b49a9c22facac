"""HR employees and ZKBioTime attendance sync"""

from .client import ZkBioTimeClient, ZkBioTimeConfig, ZkBioTimeError
from .sync import ZkBioTimeAttendanceSyncService

__all__ = [
    "ZkBioTimeClient",
    "ZkBioTimeConfig",
    "ZkBioTimeError",
    "ZkBioTimeAttendanceSyncService",
]
