"""Source adapters translating heterogeneous payloads into canonical poll records."""

from .base import SourceAdapter, parse_answers
from .civicapi import CivicApiAdapter
from .votehub import VoteHubAdapter

__all__ = ["CivicApiAdapter", "SourceAdapter", "VoteHubAdapter", "parse_answers"]
