"""Tag-based relation discovery between ideas."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from ideabox.config import DEFAULT_RELATED_LIMIT, DEFAULT_RELATION_STRENGTH
from ideabox.models import CREATED_BY_AI, Relation

if TYPE_CHECKING:
    from ideabox.storage.repository import Repository

logger = logging.getLogger(__name__)


def link_related_ideas(
    repo: Repository,
    source_id: int,
    tag_names: Iterable[str],
    limit: int = DEFAULT_RELATED_LIMIT,
    strength: float = DEFAULT_RELATION_STRENGTH,
) -> list[Relation]:
    """Relate source_id to other live ideas that share one of tag_names.

    At most `limit` targets are linked. Each (source, target) pair has a
    single relation row; relinking only overwrites its strength. Relations
    are directed, nothing is written for target -> source.
    """
    names = list(tag_names)
    # No tags means no candidates, not "every idea".
    if not names:
        return []

    relations: list[Relation] = []
    for target in repo.find_ideas_by_tags(names, exclude_id=source_id, limit=limit):
        relations.append(
            repo.upsert_relation(source_id, target.id, strength, created_by=CREATED_BY_AI)
        )

    if relations:
        logger.debug(
            f"Idea {source_id} linked to {[r.target_id for r in relations]} via {names}"
        )
    return relations
