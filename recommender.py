"""KI-gestützte Empfehlungen: Prompt, Provider-Aufruf, TMDB-Auflösung, Persistenz."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

from errors import EmptyRecommendationsError, ExternalAPIError
from match_score import calculate_match_score, create_enhanced_reason
from models import Recommendation
from schemas import AISuggestion, parse_suggestions

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """\
You are a movie recommendation expert. Based on the user's rated movies and want-to-watch list, suggest {count} unique movie recommendations.

User's Rated Movies (with ratings 1-10):
{rated}

User's Want-to-Watch List:
{want_to_watch}

Please provide {count} movie recommendations in this exact JSON format:
[
  {{
    "title": "Movie Title",
    "reason": "Brief reason why this movie matches their taste",
    "personalizedReason": "Personalized explanation based on their ratings"
  }}
]

Focus on:
1. Movies similar to their highly rated films (8-10 ratings)
2. Movies from genres they enjoy
3. Movies with similar themes or directors
4. Popular and critically acclaimed films
5. Diverse recommendations across different genres

Do not recommend any movie from either list above.
Return only the JSON array, no additional text.
"""


def build_prompt(rated: Sequence[Dict[str, Any]], want_to_watch: Sequence[Dict[str, Any]], count: int) -> str:
    rated_lines = "\n".join(f"- {m['title']} (Rating: {m['rating']}/10)" for m in rated) or "- (none)"
    wtw_lines = "\n".join(f"- {m['title']}" for m in want_to_watch) or "- (none)"
    return PROMPT_TEMPLATE.format(count=count, rated=rated_lines, want_to_watch=wtw_lines)


class RecommendationEngine:
    """
    Erzeugt pro Aufruf genau einen Batch:
    1. ein Prompt an den Text-Provider
    2. pro vorgeschlagenem Titel eine TMDB-Suche (parallel, Top-Treffer)
    3. Match-Score je Kandidat
    4. Upsert über den DataManager
    Keine Retries; Fehler gehen typisiert an den Aufrufer.
    """

    def __init__(
        self,
        data_manager,
        tmdb,
        text_generator,
        count: int = 10,
        max_tokens: int = 2000,
        lookup_workers: int = 5,
    ):
        self.dm = data_manager
        self.tmdb = tmdb
        self.text_generator = text_generator
        self.count = count
        self.max_tokens = max_tokens
        self.lookup_workers = lookup_workers

    def _with_titles(self, items) -> List[Dict[str, Any]]:
        out = []
        for item in items:
            title = getattr(item, "title", None)
            if not title:
                movie = self.dm.get_movie(item.movie_id)
                title = movie.title if movie else f"Movie {item.movie_id}"
            out.append({"movie_id": item.movie_id, "title": title, "rating": getattr(item, "rating", None)})
        return out

    def _resolve(self, title: str) -> Optional[Dict[str, Any]]:
        try:
            return self.tmdb.find_best_match(title)
        except ExternalAPIError as e:
            logger.warning(f'Lookup for "{title}" failed: {e}')
            return None

    def resolve_all(self, suggestions: Sequence[AISuggestion]) -> List[Optional[Dict[str, Any]]]:
        """Resolve every title; order follows the input, failures become None."""
        if not suggestions:
            return []
        workers = max(1, min(self.lookup_workers, len(suggestions)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self._resolve, [s.title for s in suggestions]))

    @staticmethod
    def build_candidate(suggestion: AISuggestion, movie: Dict[str, Any]) -> Dict[str, Any]:
        score, level = calculate_match_score(
            movie.get("vote_average"), movie.get("vote_count"), movie.get("popularity")
        )
        candidate = {
            "movie_id": movie["id"],
            "title": movie.get("title") or suggestion.title,
            "reason": suggestion.reason,
            "personalized_reason": suggestion.personalized_reason,
            "match_score": score,
            "match_level": level,
            "enhanced_reason": create_enhanced_reason(
                movie.get("title") or suggestion.title,
                movie.get("vote_average"),
                movie.get("vote_count"),
                movie.get("popularity"),
            ),
        }
        for key in ("overview", "poster_path", "backdrop_path", "release_date",
                    "vote_average", "vote_count", "popularity"):
            candidate[key] = movie.get(key)
        return candidate

    def generate(self, user_id: int, rated_movies, want_to_watch, count: Optional[int] = None) -> List[Recommendation]:
        count = count or self.count
        # fehlende Keys sofort melden, nicht erst als leerer Batch
        self.text_generator.ensure_configured()
        self.tmdb.ensure_configured()

        rated = self._with_titles(rated_movies)
        listed = self._with_titles(want_to_watch)
        prompt = build_prompt(rated, listed, count)

        text = self.text_generator.complete(prompt, max_tokens=self.max_tokens)
        suggestions = parse_suggestions(text)[:count]
        logger.info(f"User {user_id}: {len(suggestions)} suggestions from provider")

        excluded = {m["movie_id"] for m in rated} | {m["movie_id"] for m in listed}
        candidates = []
        for suggestion, movie in zip(suggestions, self.resolve_all(suggestions)):
            if movie is None:
                logger.warning(f'Dropping unresolved suggestion "{suggestion.title}"')
                continue
            if movie["id"] in excluded:
                logger.info(f'Dropping "{suggestion.title}": already rated or listed')
                continue
            excluded.add(movie["id"])
            candidates.append(self.build_candidate(suggestion, movie))

        if not candidates:
            raise EmptyRecommendationsError("Keine Empfehlungen gefunden.")

        saved = self.dm.save_recommendations(user_id, candidates)
        logger.info(f"User {user_id}: saved {len(saved)} recommendations")
        return saved
