import json
from collections.abc import Sequence

from docflow.database.models import EntityRecord

REAL_DATE_BONUS = 10_000


def score_entity(entity: EntityRecord) -> float:
    """Survivor score: real date first, then payload size, then recency."""
    score = 0.0
    if not entity.uses_fallback_date:
        score += REAL_DATE_BONUS
    score += len(json.dumps(entity.data))
    if entity.created_at is not None:
        score += entity.created_at.timestamp() / 1_000_000
    return score


def select_survivor(entities: Sequence[EntityRecord]) -> EntityRecord:
    """Pick the entity to keep. Ties go to the highest id."""
    if not entities:
        raise ValueError("Cannot select a survivor from an empty group")
    return max(entities, key=lambda entity: (score_entity(entity), entity.id))
