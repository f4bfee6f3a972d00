"""
Reachability Module

Components:
- ReachabilityMonitor: polls whether the network is usable and announces changes
- HostProbe: per-share DNS and TCP check before a mount attempt
"""

from .host_probe import HostProbe
from .reachability_monitor import ReachabilityMonitor

__all__ = ["HostProbe", "ReachabilityMonitor"]
