"""
NetWarden Test Configuration

Pytest fixtures and configuration for all tests.
"""

import stat
from collections.abc import Callable
from pathlib import Path

import pytest

from netwarden.analysis.models import TrafficProfile


@pytest.fixture
def temp_capture_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for capture artifacts."""
    capture_dir = tmp_path / "captures"
    capture_dir.mkdir()
    return capture_dir


@pytest.fixture
def fake_tool(tmp_path: Path) -> Callable[[str, str], Path]:
    """
    Factory for small shell scripts standing in for tcpdump, ping and nmap.

    Capture mode is invoked as: -i IFACE -n -U -w ARTIFACT host IP
    Readback mode is invoked as: -nn -tt -r ARTIFACT -c CAP
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()

    def make(name: str, body: str) -> Path:
        script = bin_dir / name
        script.write_text("#!/bin/sh\n" + body.strip() + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return make


@pytest.fixture
def make_profile() -> Callable[..., TrafficProfile]:
    """Factory for traffic profiles with the four compared metrics."""

    def make(
        pps: float = 0.0,
        bps: float = 0.0,
        sources: int = 0,
        attempts: int = 0,
    ) -> TrafficProfile:
        return TrafficProfile(
            packets_per_second=pps,
            bytes_per_second=bps,
            unique_sources={f"10.0.0.{i}" for i in range(1, sources + 1)},
            connection_attempts=attempts,
            packet_count=int(pps * 30),
            window_seconds=30.0 if pps else 0.0,
        )

    return make
