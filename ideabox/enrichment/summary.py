"""Templated summaries built from an idea's matched keywords."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from ideabox.models import SUMMARY_AUTO, Summary

if TYPE_CHECKING:
    from ideabox.storage.repository import Repository

TAG_SEPARATOR = "、"
SUMMARY_TEMPLATE = "这是关于{tags}的想法。"
GENERIC_SUMMARY = "这是一个尚未归类的想法。"


def build_summary_text(tags: Sequence[str]) -> str:
    if not tags:
        return GENERIC_SUMMARY
    return SUMMARY_TEMPLATE.format(tags=TAG_SEPARATOR.join(tags))


def generate_summary(repo: Repository, idea_id: int, tags: Sequence[str]) -> Summary:
    """Append a new automatic summary for the idea."""
    return repo.append_summary(idea_id, build_summary_text(tags), SUMMARY_AUTO)
