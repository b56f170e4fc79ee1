"""
Drop engine: picks the rarity tier and crop for a planting.

The tier draw compares one uniform value against cumulative thresholds,
rarest tier first. Active buffs scale the tier probabilities before the
comparison; speed buffs shorten growth time, which is then fixed on the
planted crop.
"""

import hashlib
import logging
from typing import Dict, List, Optional, Tuple

from ..config.game_constants import (
    CROPS,
    DROP_PROBABILITIES,
    GOLDEN_SCARECROW_MULTIPLIER,
    GROWTH_FERTILIZER_FACTOR,
    RARE_ESSENCE_MULTIPLIER,
    SERVER_ROLL_TOLERANCE,
    SPEED_SOIL_FACTOR,
)
from ..models.schemas import BuffType, CropConfig, CropInstance, Rarity
from .buffs import is_active

logger = logging.getLogger(__name__)


def get_crop(name: str) -> Optional[CropConfig]:
    """Look up a crop in the catalog."""
    entry = CROPS.get(name)
    if entry is None:
        return None
    return CropConfig(name=name, **entry)


def crops_of_rarity(rarity: Rarity) -> List[CropConfig]:
    return [CropConfig(name=name, **entry) for name, entry in CROPS.items() if entry["rarity"] == rarity]


def tier_probabilities(active_buffs: Dict[BuffType, int], now: int) -> Dict[Rarity, float]:
    """Per-tier probabilities after buff modifiers (not normalized)."""
    probabilities = dict(DROP_PROBABILITIES)

    if is_active(active_buffs, BuffType.RARE_ESSENCE, now):
        probabilities[Rarity.RARE] *= RARE_ESSENCE_MULTIPLIER

    if is_active(active_buffs, BuffType.GOLDEN_SCARECROW, now):
        for rarity in (Rarity.LEGENDARY, Rarity.EPIC, Rarity.RARE):
            probabilities[rarity] *= GOLDEN_SCARECROW_MULTIPLIER

    return probabilities


def select_rarity(r: float, probabilities: Dict[Rarity, float]) -> Rarity:
    threshold = 0.0
    for rarity in (Rarity.LEGENDARY, Rarity.EPIC, Rarity.RARE, Rarity.UNCOMMON):
        threshold += probabilities[rarity]
        if r < threshold:
            return rarity
    return Rarity.COMMON


def growth_multiplier(active_buffs: Dict[BuffType, int], now: int) -> float:
    multiplier = 1.0
    if is_active(active_buffs, BuffType.SPEED_SOIL, now):
        multiplier *= SPEED_SOIL_FACTOR
    if is_active(active_buffs, BuffType.GROWTH_FERTILIZER, now):
        multiplier *= GROWTH_FERTILIZER_FACTOR
    return multiplier


def roll_crop(active_buffs: Dict[BuffType, int], now: int, rng) -> CropInstance:
    """
    Roll a crop for a planting.

    Args:
        active_buffs: effect -> expiry (ms)
        now: current time (ms)
        rng: object with a random() method returning floats in [0, 1)

    Returns:
        CropInstance with buff-adjusted growth time
    """
    rarity = select_rarity(rng.random(), tier_probabilities(active_buffs, now))

    pool = crops_of_rarity(rarity)
    crop = pool[int(rng.random() * len(pool))]

    return CropInstance(
        name=crop.name,
        rarity=crop.rarity,
        growth_time=crop.growth_time * growth_multiplier(active_buffs, now),
    )


# =============================================================================
# Seeded rolls (server-side verification hook)
# =============================================================================

def _seed_values(seed: str) -> Tuple[float, int]:
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    value = int.from_bytes(digest[:8], "big") / float(1 << 64)
    index_source = int.from_bytes(digest[8:12], "big")
    return value, index_source


def roll_from_seed(seed: str) -> Dict[str, object]:
    """Deterministic roll without buffs: the same seed always gives the same crop."""
    value, index_source = _seed_values(seed)
    rarity = select_rarity(value, dict(DROP_PROBABILITIES))
    pool = crops_of_rarity(rarity)
    crop = pool[index_source % len(pool)]
    return {"seed": seed, "random": value, "rarity": rarity, "crop": crop}


def verify_client_roll(seed: str, rarity: Rarity, client_random: float) -> bool:
    """
    Check a client-reported roll against the seed.

    The tolerance is loose; only server-side rolls are authoritative.
    """
    expected = roll_from_seed(seed)
    matches = (
        expected["rarity"] == rarity
        and abs(expected["random"] - client_random) < SERVER_ROLL_TOLERANCE
    )
    if not matches:
        logger.warning(f"[DROP] Client roll rejected for seed {seed!r}")
    return matches
