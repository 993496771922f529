"""Source adapter interface: raw payload discovery and per-item normalisation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, ClassVar, Iterable, Mapping, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from ...records import AnswerRecord, PollRecord, Source
from ..fetcher import FetchOptions, Fetcher

AnswerModel = TypeVar("AnswerModel", bound=BaseModel)


class SourceAdapter(ABC):
    """Uniform contract letting the orchestrator treat every source alike.

    ``iter_raw_polls`` raises on fatal problems (fetch exhaustion, malformed
    envelopes). ``to_record`` raises ``pydantic.ValidationError`` for a single
    malformed item, which callers recover from locally.
    """

    source: ClassVar[Source]

    def __init__(
        self,
        fetcher: Fetcher,
        fetch_options: FetchOptions | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.fetch_options = fetch_options
        self.logger = logger or structlog.get_logger("poll_aggregator.adapter").bind(
            source=self.source.value
        )

    @abstractmethod
    def iter_raw_polls(self) -> AsyncIterator[Any]:
        """Yield raw poll items in source order."""

    @abstractmethod
    def to_record(self, item: Any) -> PollRecord:
        """Validate one raw item and map it onto the canonical record."""

    async def get_json(self, url: str, params: Mapping[str, str] | None = None) -> Any:
        result = await self.fetcher.fetch_json(url, self.fetch_options, params=params)
        return result.unwrap()


def parse_answers(
    raw_answers: Iterable[Any],
    model: type[AnswerModel],
    build: Callable[[AnswerModel], AnswerRecord],
) -> list[AnswerRecord]:
    """Validate answers individually, silently dropping malformed ones."""

    answers: list[AnswerRecord] = []
    for raw in raw_answers:
        try:
            parsed = model.model_validate(raw)
        except ValidationError:
            continue
        answers.append(build(parsed))
    return answers


__all__ = ["SourceAdapter", "parse_answers"]
