"""civicAPI adapter: single "latest polls" envelope, fingerprint-derived identities."""

from __future__ import annotations

from typing import Any, AsyncIterator

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
)

from ...config import CivicApiConfig
from ...errors import MalformedEnvelopeError
from ...records import AnswerRecord, PollRecord, Source
from ..coercion import parse_date, parse_percent, parse_sample
from ..fetcher import FetchOptions, Fetcher
from ..fingerprint import FingerprintFields, fingerprint_poll
from .base import SourceAdapter, parse_answers

UNKNOWN_POLL_TYPE = "unknown"


class CivicApiEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    count: float | None = Field(default=None, strict=True)
    polls: list[Any]


class CivicApiAnswer(BaseModel):
    model_config = ConfigDict(extra="allow")

    choice: StrictStr
    party: StrictStr | None = None
    percent: StrictInt | StrictFloat | StrictStr | None = None


class CivicApiPoll(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: StrictStr | None = None
    pollster: StrictStr | None = None
    start_date: StrictStr | None = None
    end_date: StrictStr | None = None
    sample: StrictInt | StrictFloat | StrictStr | None = None
    population: StrictStr | None = None
    state: StrictStr | None = None
    politician: StrictStr | None = None
    type: StrictStr | None = None
    answers: list[Any] = Field(default_factory=list)
    url: StrictStr | None = None


class CivicApiAdapter(SourceAdapter):
    source = Source.CIVICAPI

    def __init__(
        self,
        fetcher: Fetcher,
        config: CivicApiConfig,
        *,
        default_jurisdiction: str = "US",
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        super().__init__(fetcher, FetchOptions.from_policy(config.retry), logger)
        self.config = config
        self.default_jurisdiction = default_jurisdiction

    async def iter_raw_polls(self) -> AsyncIterator[Any]:
        payload = await self.get_json(self.config.latest_url)
        try:
            envelope = CivicApiEnvelope.model_validate(payload)
        except ValidationError as exc:
            raise MalformedEnvelopeError(
                self.source.value, f"expected an object with a 'polls' list ({exc.error_count()} errors)"
            ) from exc
        for item in envelope.polls:
            yield item

    def to_record(self, item: Any) -> PollRecord:
        poll = CivicApiPoll.model_validate(item)
        answers = parse_answers(
            poll.answers,
            CivicApiAnswer,
            lambda a: AnswerRecord(
                choice=a.choice, party=a.party, percent=parse_percent(a.percent)
            ),
        )
        sample_size = parse_sample(poll.sample)
        source_poll_id = fingerprint_poll(
            FingerprintFields(
                pollster=poll.pollster,
                start_date=poll.start_date,
                end_date=poll.end_date,
                sample=sample_size,
                population=poll.population,
                jurisdiction=poll.state,
                title=poll.title,
                politician=poll.politician,
                poll_type=poll.type,
            ),
            answers,
        )
        return PollRecord(
            source=self.source,
            source_poll_id=source_poll_id,
            poll_type=poll.type or UNKNOWN_POLL_TYPE,
            subject=poll.politician or poll.title or None,
            jurisdiction=poll.state.upper() if poll.state else self.default_jurisdiction,
            start_date=parse_date(poll.start_date),
            end_date=parse_date(poll.end_date),
            sample_size=sample_size,
            population=poll.population,
            pollster=poll.pollster,
            url=poll.url,
            raw=item,
            answers=answers,
        )


__all__ = ["CivicApiAdapter", "CivicApiAnswer", "CivicApiEnvelope", "CivicApiPoll"]
