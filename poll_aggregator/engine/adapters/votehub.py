"""VoteHub adapter: poll-type discovery plus time-windowed listings with native IDs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Union

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from ...config import VoteHubConfig
from ...errors import MalformedEnvelopeError
from ...records import AnswerRecord, PollRecord, Source
from ..coercion import as_string, humanize_subject, parse_date
from ..fetcher import FetchOptions, Fetcher
from .base import SourceAdapter, parse_answers


class VoteHubAnswer(BaseModel):
    model_config = ConfigDict(extra="allow")

    choice: StrictStr
    party: StrictStr | None = None
    percent: float | None = Field(default=None, strict=True)


class VoteHubPoll(BaseModel):
    """Fields the pipeline relies on; anything else is kept only in ``raw``."""

    model_config = ConfigDict(extra="allow")

    id: StrictStr | StrictInt
    poll_type: StrictStr
    subject: Any = None
    sample_size: StrictInt | StrictFloat | None = None
    population: StrictStr | None = None
    url: StrictStr | None = None
    start_date: StrictStr | None = None
    end_date: StrictStr | None = None
    pollster: Any = None
    answers: list[Any] = Field(default_factory=list)
    sponsors: list[Any] = Field(default_factory=list)
    internal: StrictBool | None = None
    partisan: StrictBool | None = None

    @field_validator("sample_size")
    @classmethod
    def _whole_sample(cls, value: int | float | None) -> int | None:
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError("sample_size must be a whole number")
            return int(value)
        return value


class PollTypesEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    poll_types: list[StrictStr]


class PollListEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    polls: list[Any]


_POLL_TYPES = TypeAdapter(Union[list[StrictStr], PollTypesEnvelope])
_POLL_LIST = TypeAdapter(Union[list[Any], PollListEnvelope])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VoteHubAdapter(SourceAdapter):
    source = Source.VOTEHUB

    def __init__(
        self,
        fetcher: Fetcher,
        config: VoteHubConfig,
        *,
        default_jurisdiction: str = "US",
        clock: Callable[[], datetime] = _utcnow,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        super().__init__(fetcher, FetchOptions.from_policy(config.retry), logger)
        self.config = config
        self.default_jurisdiction = default_jurisdiction
        self._clock = clock

    def window(self) -> tuple[str, str]:
        """Inclusive ``(from_date, to_date)`` as ``YYYY-MM-DD`` strings."""

        today = self._clock().astimezone(timezone.utc).date()
        start = today - timedelta(days=self.config.lookback_days)
        return start.isoformat(), today.isoformat()

    async def discover_poll_types(self) -> list[str]:
        payload = await self.get_json(self.config.endpoint(self.config.poll_types_path))
        try:
            parsed = _POLL_TYPES.validate_python(payload)
        except ValidationError:
            self.logger.warning(
                "poll_types_fallback", fallback=self.config.fallback_poll_types
            )
            return list(self.config.fallback_poll_types)
        if isinstance(parsed, PollTypesEnvelope):
            return parsed.poll_types
        return parsed

    async def iter_raw_polls(self) -> AsyncIterator[Any]:
        poll_types = await self.discover_poll_types()
        date_from, date_to = self.window()
        polls_url = self.config.endpoint(self.config.polls_path)
        self.logger.info(
            "listing_window", poll_types=poll_types, from_date=date_from, to_date=date_to
        )
        for poll_type in poll_types:
            payload = await self.get_json(
                polls_url,
                params={"poll_type": poll_type, "from_date": date_from, "to_date": date_to},
            )
            for item in self._unwrap_listing(payload, poll_type):
                yield item

    def _unwrap_listing(self, payload: Any, poll_type: str) -> list[Any]:
        try:
            parsed = _POLL_LIST.validate_python(payload)
        except ValidationError as exc:
            raise MalformedEnvelopeError(
                self.source.value,
                f"poll listing for {poll_type!r} is neither a list nor an object with 'polls' "
                f"({exc.error_count()} validation errors)",
            ) from exc
        if isinstance(parsed, PollListEnvelope):
            return parsed.polls
        return parsed

    def to_record(self, item: Any) -> PollRecord:
        poll = VoteHubPoll.model_validate(item)
        answers = parse_answers(
            poll.answers,
            VoteHubAnswer,
            lambda a: AnswerRecord(choice=a.choice, party=a.party, percent=a.percent),
        )
        sponsor_names = [name for name in map(as_string, poll.sponsors) if name]
        return PollRecord(
            source=self.source,
            source_poll_id=as_string(poll.id) or "",
            poll_type=poll.poll_type,
            subject=humanize_subject(poll.subject),
            jurisdiction=self.default_jurisdiction,
            start_date=parse_date(poll.start_date),
            end_date=parse_date(poll.end_date),
            sample_size=poll.sample_size,
            population=poll.population,
            pollster=as_string(poll.pollster),
            sponsor=", ".join(sponsor_names) or None,
            url=poll.url,
            internal=poll.internal,
            partisan=poll.partisan,
            raw=item,
            answers=answers,
        )


__all__ = ["VoteHubAdapter", "VoteHubAnswer", "VoteHubPoll"]
