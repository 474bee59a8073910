"""Connectivity probe — online/offline detection for scans."""

from depsentinel.engines.connectivity.errors import is_network_error
from depsentinel.engines.connectivity.network_status import NetworkStatusService

__all__ = ["NetworkStatusService", "is_network_error"]
