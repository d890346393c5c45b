"""Find-or-create resolution of tag names to Tag records."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from ideabox.errors import ValidationError
from ideabox.models import Tag

if TYPE_CHECKING:
    from ideabox.storage.repository import Repository

logger = logging.getLogger(__name__)


def normalize_tag_name(name: str) -> str:
    """Strip surrounding whitespace and reject blank names. Case is preserved."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Tag name must not be empty")
    return cleaned


def resolve_tag(repo: Repository, name: str) -> Tag:
    """Return the tag with this exact name, creating it if needed.

    The UNIQUE constraint on tags.name is the guard against two writers
    creating the same tag: the loser gets an IntegrityError and re-reads
    the row the winner inserted.
    """
    name = normalize_tag_name(name)

    tag = repo.get_tag_by_name(name)
    if tag is not None:
        return tag

    try:
        tag = repo.insert_tag(name)
        logger.debug(f"Created tag {name!r} ({tag.id})")
        return tag
    except sqlite3.IntegrityError:
        tag = repo.get_tag_by_name(name)
        if tag is None:
            raise
        logger.debug(f"Tag {name!r} created concurrently, reusing {tag.id}")
        return tag
