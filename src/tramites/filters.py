"""Typed process filters used by listings and the board."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from rapidfuzz import fuzz

from .models import Priority, Process, ProcessStatus, UtcDatetime
from .search import fold


class _Filter(BaseModel):
    model_config = ConfigDict(frozen=True)


class StatusFilter(_Filter):
    field: Literal["status"] = "status"
    statuses: frozenset[ProcessStatus]

    def matches(self, process: Process) -> bool:
        return process.status in self.statuses


class ClientFilter(_Filter):
    field: Literal["client"] = "client"
    client_id: str

    def matches(self, process: Process) -> bool:
        return process.client_id == self.client_id


class AuthorityFilter(_Filter):
    field: Literal["authority"] = "authority"
    authority_id: str

    def matches(self, process: Process) -> bool:
        return process.authority_id == self.authority_id


class PriorityFilter(_Filter):
    field: Literal["priority"] = "priority"
    priorities: frozenset[Priority]

    def matches(self, process: Process) -> bool:
        return process.priority in self.priorities


class DateRangeFilter(_Filter):
    """Matches on creation date; either bound may be open."""

    field: Literal["created"] = "created"
    since: UtcDatetime | None = None
    until: UtcDatetime | None = None

    def matches(self, process: Process) -> bool:
        if self.since is not None and process.created_at < self.since:
            return False
        if self.until is not None and process.created_at > self.until:
            return False
        return True


class TagFilter(_Filter):
    field: Literal["tags"] = "tags"
    tags: frozenset[str]

    def matches(self, process: Process) -> bool:
        wanted = {fold(tag) for tag in self.tags}
        return wanted.issubset({fold(tag) for tag in process.tags})


class TextFilter(_Filter):
    field: Literal["text"] = "text"
    query: str
    threshold: int = Field(default=70, ge=0, le=100)

    def matches(self, process: Process) -> bool:
        query = fold(self.query)
        if not query:
            return True
        haystacks = [process.title, process.description, *process.tags]
        return any(fuzz.partial_ratio(query, fold(text)) >= self.threshold for text in haystacks if text)


ProcessFilter = Annotated[
    Union[
        StatusFilter,
        ClientFilter,
        AuthorityFilter,
        PriorityFilter,
        DateRangeFilter,
        TagFilter,
        TextFilter,
    ],
    Field(discriminator="field"),
]

FILTERS_ADAPTER: TypeAdapter[List[ProcessFilter]] = TypeAdapter(List[ProcessFilter])


def parse_filters(payload: Sequence[dict[str, object]] | None) -> List[ProcessFilter]:
    if not payload:
        return []
    return FILTERS_ADAPTER.validate_python(list(payload))


def apply_filters(processes: Iterable[Process], filters: Sequence[ProcessFilter]) -> List[Process]:
    """Return the processes matching every filter, preserving order."""

    return [process for process in processes if all(item.matches(process) for item in filters)]
