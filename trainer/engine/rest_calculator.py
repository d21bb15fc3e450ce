"""Rest interval between sets, from the intensity of the prescription."""

from __future__ import annotations

from typing import Optional

from trainer.engine.config import DEFAULT_CONFIG, EngineConfig


def tier_rest_seconds(is_time_based: bool, reps_or_hold: int, config: EngineConfig = DEFAULT_CONFIG) -> int:
    if is_time_based:
        tiers, default = config.hold_rest_tiers, config.hold_rest_default
    else:
        tiers, default = config.rep_rest_tiers, config.rep_rest_default
    for upper, rest in tiers:
        if reps_or_hold <= upper:
            return rest
    return default


def compute_rest_seconds(
    is_time_based: bool,
    reps_or_hold: int,
    intent_mode: str = "normal",
    default_rest: Optional[int] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> int:
    """Rest in seconds.

    Short holds and low rep counts (near-maximal work) rest longest. Blast mode
    overrides everything with ``config.blast_rest_seconds``. Without a positive
    amount the authored ``default_rest`` is used, else the last rep tier.
    """
    if intent_mode == "blast":
        return config.blast_rest_seconds
    if reps_or_hold is None or reps_or_hold <= 0:
        return int(default_rest) if default_rest else config.rep_rest_tiers[-1][1]
    return tier_rest_seconds(is_time_based, int(reps_or_hold), config)
