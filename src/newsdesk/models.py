from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class AgentDefinition:
    id: str
    name: str
    niche: str
    category: str
    schedule: str
    status: str
    last_run: str | None
    perspective: int
    use_current_events: bool
    category_id: str | None = None
    age: int | None = None
    gender: str | None = None
    avatar_url: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(frozen=True)
class GeneratedArticle:
    title: str
    html_body: str
    status: str
    author_id: str | None
    agent_id: str
    category_id: str | None
    featured_image_data_uri: str | None
    slug: str


@dataclass(frozen=True)
class ResearchResult:
    title: str
    summary: str
    source: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class PipelineResult:
    status: str
    agent_id: str | None = None
    post_id: str | None = None
    slug: str | None = None
    image_attached: bool = False
    error: str | None = None
    reason: str | None = None
    steps: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
