"""Data sufficiency gate.

Indicator formulas are defined on degenerate input (a constant series, a
single repeated quote) but the numbers they produce there are meaningless.
The gate refuses such series so no signal is derived from them.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict

from market_sentinel.core.config import AnalysisConfig
from market_sentinel.core.models import QuoteRecord

logger = logging.getLogger(__name__)


class SufficiencyReport(BaseModel):
    """Outcome of a gate check, with the measured diagnostics."""

    model_config = ConfigDict(frozen=True)

    sufficient: bool
    reasons: list[str] = []
    points: int = 0
    valid_points: int = 0
    price_range: float = 0.0
    std_dev: float = 0.0
    unique_timestamps: int = 0


class SufficiencyGate:
    """Rejects series too short, too flat or too repetitive to analyse.

    Every failing criterion is reported, not only the first.
    """

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self._config = config or AnalysisConfig()

    def check(self, series: Sequence[QuoteRecord]) -> SufficiencyReport:
        cfg = self._config
        closes = [r.close for r in series]
        valid = np.asarray(
            [c for c in closes if math.isfinite(c) and c > 0], dtype=float
        )

        price_range = float(valid.max() - valid.min()) if valid.size else 0.0
        std_dev = float(valid.std()) if valid.size else 0.0
        unique_timestamps = len({r.timestamp for r in series})

        reasons: list[str] = []
        if len(series) < cfg.min_points:
            reasons.append(f"only {len(series)} points, need {cfg.min_points}")
        if valid.size < cfg.min_points:
            reasons.append(
                f"only {valid.size} points with a positive close, need {cfg.min_points}"
            )
        if price_range < cfg.min_price_range:
            reasons.append(
                f"price range {price_range:.2f} below {cfg.min_price_range}"
            )
        if std_dev < cfg.min_std_dev:
            reasons.append(f"std dev {std_dev:.4f} below {cfg.min_std_dev}")
        if unique_timestamps < cfg.min_unique_timestamps:
            reasons.append(
                f"only {unique_timestamps} unique timestamps, "
                f"need {cfg.min_unique_timestamps}"
            )

        return SufficiencyReport(
            sufficient=not reasons,
            reasons=reasons,
            points=len(series),
            valid_points=int(valid.size),
            price_range=price_range,
            std_dev=std_dev,
            unique_timestamps=unique_timestamps,
        )

    def is_sufficient(self, series: Sequence[QuoteRecord]) -> bool:
        return self.check(series).sufficient
