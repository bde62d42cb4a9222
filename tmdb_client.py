"""TMDB API client."""

import logging
from typing import Any, Dict, List, Optional

import requests

from errors import ConfigurationError, ExternalAPIError

logger = logging.getLogger(__name__)


class TMDBClient:
    """Client for The Movie Database (TMDB) API."""

    BASE_URL = "https://api.themoviedb.org/3"
    IMAGE_BASE_URL = "https://image.tmdb.org/t/p"

    def __init__(self, api_key: Optional[str], language: str = "en-US", timeout: float = 15):
        self.api_key = api_key
        self.language = language
        self.timeout = timeout
        if not self.api_key:
            logger.warning("TMDB_API_KEY not set")

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError("TMDB API key not configured")

    def _get(self, endpoint: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        """Make GET request to TMDB API."""
        self.ensure_configured()

        url = f"{self.BASE_URL}{endpoint}"
        params = dict(params or {})
        params["api_key"] = self.api_key
        params.setdefault("language", self.language)

        try:
            response = requests.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"TMDB API error: {e}")
            raise ExternalAPIError(f"TMDB Anfrage fehlgeschlagen: {e}") from e

        if response.status_code != 200:
            logger.warning(f"TMDB {endpoint} returned {response.status_code}")
            raise ExternalAPIError(f"TMDB Status {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalAPIError("TMDB lieferte kein JSON") from e
        if not isinstance(data, dict):
            raise ExternalAPIError(f"TMDB {endpoint}: unerwartetes Antwortformat")
        return data

    @staticmethod
    def _summary(movie: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": movie["id"],
            "title": movie.get("title"),
            "overview": movie.get("overview"),
            "poster_path": movie.get("poster_path"),
            "backdrop_path": movie.get("backdrop_path"),
            "release_date": movie.get("release_date"),
            "vote_average": movie.get("vote_average"),
            "vote_count": movie.get("vote_count"),
            "popularity": movie.get("popularity"),
            "genre_ids": movie.get("genre_ids", []),
        }

    def _page(self, data: Dict[str, Any]) -> Dict[str, Any]:
        results = data.get("results", [])
        if not isinstance(results, list) or not all(isinstance(m, dict) for m in results):
            raise ExternalAPIError("TMDB lieferte eine ungültige Ergebnisliste")
        return {
            "page": data.get("page", 1),
            "results": [self._summary(m) for m in results if "id" in m],
            "total_pages": data.get("total_pages", 0),
            "total_results": data.get("total_results", 0),
        }

    def get_movie(self, movie_id: int) -> Dict[str, Any]:
        """Get detailed movie information."""
        data = self._get(f"/movie/{movie_id}")
        if "id" not in data:
            raise ExternalAPIError(f"TMDB lieferte keinen Film {movie_id}")
        movie = self._summary(data)
        movie.update(
            {
                "runtime": data.get("runtime"),
                "status": data.get("status"),
                "tagline": data.get("tagline"),
                "budget": data.get("budget"),
                "revenue": data.get("revenue"),
                "genres": data.get("genres"),
                "production_companies": data.get("production_companies"),
            }
        )
        return movie

    def search_movies(self, query: str, page: int = 1) -> Dict[str, Any]:
        """Search for movies by title."""
        return self._page(self._get("/search/movie", params={"query": query, "page": page}))

    def find_best_match(self, title: str) -> Optional[Dict[str, Any]]:
        """Top search hit for a title, or None."""
        results = self.search_movies(title)["results"]
        if not results:
            logger.warning(f'No movies found for title: "{title}"')
            return None
        return results[0]

    def get_popular_movies(self, page: int = 1) -> Dict[str, Any]:
        return self._page(self._get("/movie/popular", params={"page": page}))

    def get_genres(self) -> List[Dict[str, Any]]:
        genres = self._get("/genre/movie/list").get("genres") or []
        if not isinstance(genres, list):
            raise ExternalAPIError("TMDB lieferte eine ungültige Genreliste")
        return genres

    def get_movies_by_genre(self, genre_id: int, page: int = 1) -> Dict[str, Any]:
        data = self._get(
            "/discover/movie",
            params={"with_genres": genre_id, "sort_by": "popularity.desc", "page": page},
        )
        return self._page(data)

    def get_poster_url(self, poster_path: Optional[str], size: str = "w500") -> Optional[str]:
        if poster_path:
            return f"{self.IMAGE_BASE_URL}/{size}{poster_path}"
        return None
