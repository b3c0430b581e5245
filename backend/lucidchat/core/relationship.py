"""Relationship policy - maps affection scores to tiers and content unlocks.

Pure functions only; called on every score mutation.
"""

from dataclasses import dataclass, field

from lucidchat.models.enums import Location, Outfit, RelationTier

TIER_ORDER = [
    RelationTier.ENEMY,
    RelationTier.STRANGER,
    RelationTier.ACQUAINTANCE,
    RelationTier.FRIEND,
    RelationTier.LOVER,
]

BASE_OUTFIT = Outfit.MAID
BASE_LOCATIONS = [Location.ENTRANCE, Location.LIVINGROOM, Location.KITCHEN, Location.GARDEN]

# Content introduced exactly at each tier; everything stays unlocked above it.
LOCATION_UNLOCKS: dict[RelationTier, list[Location]] = {
    RelationTier.ENEMY: [],
    RelationTier.STRANGER: [],
    RelationTier.ACQUAINTANCE: [Location.STUDY, Location.BALCONY, Location.DOWNTOWN],
    RelationTier.FRIEND: [Location.BEACH, Location.BAR],
    RelationTier.LOVER: [Location.BEDROOM, Location.BATHROOM],
}

OUTFIT_UNLOCKS: dict[RelationTier, list[Outfit]] = {
    RelationTier.ENEMY: [],
    RelationTier.STRANGER: [],
    RelationTier.ACQUAINTANCE: [Outfit.PAJAMA, Outfit.DATE],
    RelationTier.FRIEND: [Outfit.SWIMWEAR],
    RelationTier.LOVER: [Outfit.NEGLIGEE],
}

TIER_DISPLAY_NAMES = {
    RelationTier.ENEMY: "Enemy",
    RelationTier.STRANGER: "Stranger",
    RelationTier.ACQUAINTANCE: "Acquaintance",
    RelationTier.FRIEND: "Friend",
    RelationTier.LOVER: "Lover",
}


@dataclass(frozen=True)
class Unlocks:
    locations: list[Location] = field(default_factory=list)
    outfits: list[Outfit] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.locations and not self.outfits


@dataclass(frozen=True)
class ScoreChange:
    previous_score: int
    score: int
    previous_tier: RelationTier
    tier: RelationTier
    promoted: bool
    unlocks: Unlocks


def tier_from_score(score: int) -> RelationTier:
    if score < 0:
        return RelationTier.ENEMY
    if score <= 20:
        return RelationTier.STRANGER
    if score < 40:
        return RelationTier.ACQUAINTANCE
    if score < 80:
        return RelationTier.FRIEND
    return RelationTier.LOVER


def rank(tier: RelationTier) -> int:
    return TIER_ORDER.index(tier)


def is_promotion(current: RelationTier, next_tier: RelationTier) -> bool:
    """Promotions are event-worthy; demotions (including into ENEMY) are silent."""
    if next_tier == RelationTier.ENEMY:
        return False
    return rank(next_tier) > rank(current)


def unlocks_for(tier: RelationTier) -> Unlocks:
    return Unlocks(
        locations=list(LOCATION_UNLOCKS[tier]),
        outfits=list(OUTFIT_UNLOCKS[tier]),
    )


def unlocks_between(current: RelationTier, next_tier: RelationTier) -> Unlocks:
    """Everything introduced above ``current`` up to and including ``next_tier``."""
    locations: list[Location] = []
    outfits: list[Outfit] = []
    for tier in TIER_ORDER[rank(current) + 1 : rank(next_tier) + 1]:
        locations.extend(LOCATION_UNLOCKS[tier])
        outfits.extend(OUTFIT_UNLOCKS[tier])
    return Unlocks(locations=locations, outfits=outfits)


def allowed_locations(tier: RelationTier) -> list[Location]:
    allowed = list(BASE_LOCATIONS)
    for t in TIER_ORDER[: rank(tier) + 1]:
        allowed.extend(LOCATION_UNLOCKS[t])
    return allowed


def allowed_outfits(tier: RelationTier) -> list[Outfit]:
    allowed = [BASE_OUTFIT]
    for t in TIER_ORDER[: rank(tier) + 1]:
        allowed.extend(OUTFIT_UNLOCKS[t])
    return allowed


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def apply_delta(score: int, delta: int, low: int, high: int) -> ScoreChange:
    """Apply ``delta`` within ``[low, high]`` and describe the resulting tier change."""
    new_score = clamp(score + delta, low, high)
    previous_tier = tier_from_score(score)
    tier = tier_from_score(new_score)
    promoted = is_promotion(previous_tier, tier)
    return ScoreChange(
        previous_score=score,
        score=new_score,
        previous_tier=previous_tier,
        tier=tier,
        promoted=promoted,
        unlocks=unlocks_between(previous_tier, tier) if promoted else Unlocks(),
    )
