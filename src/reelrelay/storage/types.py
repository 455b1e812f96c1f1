"""Storage domain types."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

StrategyName = Literal["delegated", "service"]


class RemoteAsset(BaseModel):
    file_id: str
    web_view_link: str | None = None
    web_content_link: str | None = None
    name: str
    strategy: StrategyName
