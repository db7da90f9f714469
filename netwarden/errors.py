"""
NetWarden Error Types

Configuration errors fail the current operation immediately.
Transient capture errors degrade an observation to an empty result.
Classification errors are absorbed by the finding emitter.
"""


class NetWardenError(Exception):
    """Base class for all NetWarden errors."""


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(NetWardenError):
    """The environment or the request is misconfigured; retrying will not help."""


class InvalidTargetError(ConfigurationError, ValueError):
    """The target is not a valid IPv4/IPv6 address."""

    def __init__(self, ip: str):
        super().__init__(f"Invalid IP address: {ip}")
        self.ip = ip


class CapturePermissionError(ConfigurationError):
    """The capture tool is not allowed to open the interface."""


class CaptureDeviceError(ConfigurationError):
    """Neither the configured nor the catch-all interface exists."""


# =============================================================================
# Transient Errors
# =============================================================================


class TransientCaptureError(NetWardenError):
    """Capture failed for a reason that may not recur on the next cycle."""


class CaptureStartTimeout(TransientCaptureError):
    """The capture tool did not start listening in time."""


class CaptureProcessError(TransientCaptureError):
    """The capture tool could not be launched or exited unexpectedly."""


class CaptureInterruptedError(TransientCaptureError):
    """The capture was stopped or replaced before its window ended."""


# =============================================================================
# Collaborator Errors
# =============================================================================


class ClassificationError(NetWardenError):
    """The classifier could not produce a usable classification."""
