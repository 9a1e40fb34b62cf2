"""Process hardening so decrypted secrets cannot leak to disk via a crash."""

from __future__ import annotations

import logging
import platform
import warnings

import psutil

logger = logging.getLogger("pearanoid.harden")

MIN_AVAILABLE_RAM_GB = 0.25


class SecurityWarning(UserWarning):
    """A protection could not be applied."""


def apply_platform_hardening() -> bool:
    """Disable core dumps on Unix. Returns True when the limit was applied."""
    if platform.system() not in ("Linux", "Darwin"):
        return False
    try:
        import resource

        resource.setrlimit(resource.RLIMIT_CORE, (0, 0))
    except (ImportError, ValueError, OSError) as exc:
        logger.error("Could not disable core dumps: %s", exc)
        warnings.warn(SecurityWarning(f"Core dumps still enabled: {exc}"))
        return False
    logger.debug("Core dumps disabled")
    return True


def validate_system_requirements() -> None:
    avail = psutil.virtual_memory().available / (1024**3)
    if avail < MIN_AVAILABLE_RAM_GB:
        raise SystemError(
            f"Insufficient RAM: {avail:.2f} GB free (minimum {MIN_AVAILABLE_RAM_GB} GB)."
        )
