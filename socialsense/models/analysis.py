"""
Analysis payload models.

The backend stores several analysis columns as JSON text, so the same field
can arrive either encoded (``'[{"word": "love", "count": 3}]'``) or already
decoded. Everything is decoded exactly once here; downstream code only ever
sees typed values.
"""

import json
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from socialsense.core.exceptions import MalformedPayloadException
from socialsense.models.enumerations import ResourceStatus

logger = structlog.get_logger(__name__)


def _decode_json_field(field_name: str, value: Any, empty: Any) -> Any:
    """Decode a field that may be a JSON string, returning ``empty`` for null or malformed input."""
    if value is None:
        return empty
    if isinstance(value, str):
        if not value.strip():
            return empty
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            logger.warning("malformed_json_field", field=field_name, error=str(e))
            return empty
    if not isinstance(value, type(empty)):
        logger.warning(
            "unexpected_field_type",
            field=field_name,
            expected=type(empty).__name__,
            got=type(value).__name__,
        )
        return empty
    return value


def _as_label(value: Any) -> str:
    if value is None or value == "":
        return "Unknown"
    return value if isinstance(value, str) else str(value)


def _as_number(value: Any, cast=int):
    """Numeric value or 0 for anything that is not a number."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return 0
    try:
        return cast(value) if isinstance(value, int) else cast(float(value))
    except (ValueError, OverflowError):
        return 0


def _objects_only(field_name: str, items: List[Any]) -> List[Dict[str, Any]]:
    kept = [item for item in items if isinstance(item, dict)]
    if len(kept) != len(items):
        logger.warning("dropped_non_object_entries", field=field_name, dropped=len(items) - len(kept))
    return kept


class Keyword(BaseModel):
    model_config = ConfigDict(extra="ignore")

    word: str = "Unknown"
    count: int = 0

    @field_validator("word", mode="before")
    @classmethod
    def default_word(cls, v):
        return _as_label(v)

    @field_validator("count", mode="before")
    @classmethod
    def default_count(cls, v):
        return _as_number(v)


class Theme(BaseModel):
    model_config = ConfigDict(extra="ignore")

    theme: str = "Unknown"
    count: int = 0

    @field_validator("theme", mode="before")
    @classmethod
    def default_theme(cls, v):
        return _as_label(v)

    @field_validator("count", mode="before")
    @classmethod
    def default_count(cls, v):
        return _as_number(v)


class SentimentScores(BaseModel):
    model_config = ConfigDict(extra="ignore")

    positive: float = 0
    neutral: float = 0
    negative: float = 0

    @field_validator("positive", "neutral", "negative", mode="before")
    @classmethod
    def numeric_scores(cls, v):
        return _as_number(v, float)


class FilterStats(BaseModel):
    """Counts from the backend's comment pre-filters."""
    model_config = ConfigDict(extra="allow")

    total_fetched: int = 0
    after_hard_filters: int = 0
    emoji_only: int = 0
    spam_promo: int = 0
    duplicates: int = 0

    @field_validator("total_fetched", "after_hard_filters", "emoji_only", "spam_promo", "duplicates", mode="before")
    @classmethod
    def numeric_counts(cls, v):
        return _as_number(v)


class Analysis(BaseModel):
    """A comment analysis as returned by ``GET /analysis/{id}``."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    status: ResourceStatus
    platform: Optional[str] = None
    video_url: Optional[str] = None
    video_title: Optional[str] = None
    comment_count: int = 0
    summary: Optional[str] = None
    created_at: Optional[str] = None

    keywords: List[Keyword] = Field(default_factory=list)
    themes: List[Theme] = Field(default_factory=list)
    raw_comments: List[Dict[str, Any]] = Field(default_factory=list)
    sentiment_scores: SentimentScores = Field(default_factory=SentimentScores)
    filter_stats: FilterStats = Field(default_factory=FilterStats)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if isinstance(v, int) else v

    @field_validator("keywords", "themes", "raw_comments", mode="before")
    @classmethod
    def decode_list_fields(cls, v, info):
        return _objects_only(info.field_name, _decode_json_field(info.field_name, v, []))

    @field_validator("sentiment_scores", "filter_stats", mode="before")
    @classmethod
    def decode_object_fields(cls, v, info):
        return _decode_json_field(info.field_name, v, {})

    @property
    def is_processing(self) -> bool:
        return self.status == ResourceStatus.PROCESSING


def parse_analysis(payload: Any) -> Analysis:
    """
    Decode a backend analysis payload.

    Accepts the ``{"analysis": {...}}`` envelope or a bare analysis object.

    Raises:
        MalformedPayloadException: if the payload has no usable id/status.
    """
    if isinstance(payload, dict) and isinstance(payload.get("analysis"), dict):
        payload = payload["analysis"]
    if not isinstance(payload, dict):
        raise MalformedPayloadException("Analysis payload must be a JSON object")
    try:
        return Analysis.model_validate(payload)
    except ValidationError as e:
        logger.error("analysis_payload_rejected", errors=e.error_count())
        raise MalformedPayloadException(f"Invalid analysis payload: {e.errors()[0]['msg']}") from e
