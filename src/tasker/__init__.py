"""
launchd-tasker — package root.

Purpose
- Manage launchd jobs on a single host: turn declarative YAML job specs into
  property-list descriptors, drive ``launchctl``, and keep per-job state under
  one root directory with trash-based cleanup.

Import boundary
- Must not have side effects at import time (no settings loading, no logging init).
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
