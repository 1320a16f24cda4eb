"""Build lifecycle module.

This module handles:
- Build request validation
- Submitting builds to the provider
- Build records and their logs
- Mirroring provider status onto records

Access submodules via appwrap.builds.service, appwrap.builds.status, etc.
"""

from appwrap.builds.models import BuildLogEntry, BuildRecord

__all__ = ["BuildLogEntry", "BuildRecord"]
