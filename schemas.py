"""Pydantic schemas for recommendation input and AI output."""

import re
from typing import List, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from errors import MalformedResponseError, ValidationError

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class AISuggestion(BaseModel):
    """A single title suggested by the text-generation provider."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    title: str = Field(min_length=1)
    reason: str
    personalized_reason: str = Field(alias="personalizedReason")


class RatedMovieIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    movie_id: int = Field(alias="movieId", gt=0)
    rating: int = Field(ge=1, le=10)
    title: Optional[str] = None


class WantToWatchIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    movie_id: int = Field(alias="movieId", gt=0)
    title: Optional[str] = None


class RecommendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rated_movies: List[RatedMovieIn] = Field(default_factory=list, alias="ratedMovies")
    want_to_watch: List[WantToWatchIn] = Field(default_factory=list, alias="wantToWatchList")


_SUGGESTIONS = TypeAdapter(List[AISuggestion])


def parse_suggestions(text: str) -> List[AISuggestion]:
    """Decode the provider's reply as a JSON array of suggestions.

    Only a surrounding Markdown code fence is removed. Anything that does
    not validate raises MalformedResponseError; there is no partial recovery.
    """
    payload = (text or "").strip()
    fenced = _FENCE.match(payload)
    if fenced:
        payload = fenced.group(1)
    try:
        return _SUGGESTIONS.validate_json(payload)
    except pydantic.ValidationError as e:
        raise MalformedResponseError(
            f"KI-Antwort ist keine gültige Empfehlungsliste ({e.error_count()} Fehler)"
        ) from e


def parse_recommend_request(body: Optional[dict]) -> RecommendRequest:
    try:
        return RecommendRequest.model_validate(body or {})
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"])
        raise ValidationError(f"Ungültige Eingabe bei {where}: {first['msg']}") from e
