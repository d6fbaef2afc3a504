"""Pydantic schemas for the analytics import endpoint."""

from __future__ import annotations

from pydantic import BaseModel, Field, NonNegativeInt

__all__ = ["ImportBreakdown", "ImportPayload", "ImportSummary"]


class ImportSummary(BaseModel):
    totalRequests: NonNegativeInt | None = Field(default=None)
    totalToolCalls: NonNegativeInt | None = Field(default=None)


class ImportBreakdown(BaseModel):
    byMethod: dict[str, NonNegativeInt] | None = Field(default=None)
    byEndpoint: dict[str, NonNegativeInt] | None = Field(default=None)
    byTool: dict[str, NonNegativeInt] | None = Field(default=None)


class ImportPayload(BaseModel):
    """
    Aggregate counts to add to the live analytics.

    Shaped like the /analytics summary document, so a saved copy of that
    response can be posted back as-is. Unknown sections are ignored.
    """

    summary: ImportSummary | None = Field(default=None)
    breakdown: ImportBreakdown | None = Field(default=None)
