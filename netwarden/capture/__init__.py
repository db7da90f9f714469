"""
NetWarden Capture Module

Lifecycle of tcpdump capture sessions.
"""

from netwarden.capture.session import (
    CaptureManager,
    CaptureSession,
    CaptureStatus,
    classify_stderr,
)

__all__ = [
    "CaptureManager",
    "CaptureSession",
    "CaptureStatus",
    "classify_stderr",
]
