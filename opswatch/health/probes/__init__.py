"""Concrete probes, one module per domain."""

from .application import (
    ActiveUsersProbe,
    ContainerProbe,
    ErrorRateProbe,
    RequestRateProbe,
    ResponseTimeProbe,
)
from .security import CertificateProbe, FirewallProbe, SecurityUpdatesProbe
from .services import ApiProbe, CacheProbe, DatastoreProbe, RealtimeProbe
from .system import CpuProbe, DiskProbe, MemoryProbe
