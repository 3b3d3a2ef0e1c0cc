# repodevkit/errors.py
"""Exception hierarchy shared by all repodevkit modules."""

from __future__ import annotations


class DevkitError(Exception):
    pass


class ConfigError(DevkitError):
    """Malformed specs file or contradictory options."""


class BackendError(DevkitError):
    """Backend construction failed (missing credentials, bucket, path...)."""


class BackendIOError(BackendError):
    """Listing or fetching from the artifact store failed."""


class DecodeError(DevkitError):
    """A metadata sidecar or a recipe definition could not be decoded."""


class VersionError(DevkitError, ValueError):
    """Version or selector string does not follow the ebuild grammar."""


class ResolverError(DevkitError):
    """Structural inconsistency found while building the level structure."""
