"""Integration test fixtures: real file I/O, HTTP mocked with respx."""

from __future__ import annotations

import math
from pathlib import Path

import pytest

RECORDING_START = 1718942400  # 2024-06-21 04:00:00 UTC, 09:30 IST


def write_recording(path: Path, symbols: dict[str, float], rows: int = 70) -> Path:
    """A one-minute recording per symbol with a gentle uptrend and a wobble."""
    lines = ["symbol,timestamp,open,high,low,ltp,volume"]
    for i in range(rows):
        ts = RECORDING_START + i * 60
        for symbol, base in symbols.items():
            close = round(base * (1 + 0.0008 * i) + base * 0.001 * math.sin(i / 3), 2)
            lines.append(
                f"{symbol},{ts},,{close + 1.5:.2f},{close - 1.5:.2f},{close:.2f},{1000 + i}"
            )
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def recording(tmp_path: Path) -> Path:
    return write_recording(
        tmp_path / "recording.csv", {"NIFTY": 23500.0, "BANKNIFTY": 51600.0}
    )
