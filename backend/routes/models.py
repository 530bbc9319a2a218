"""Pydantic response models for API endpoints."""

from pydantic import BaseModel


class ScenarioSummary(BaseModel):
    id: str
    title: str


class ProviderInfo(BaseModel):
    id: str
    streaming: bool
    sync: bool
    aliases: list[str] = []
