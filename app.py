"""MoviWeb Flask application."""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_login import LoginManager, current_user, login_required, login_user, logout_user
from werkzeug.exceptions import HTTPException

from data_manager import MOVIE_FIELDS, DataManager
from errors import AppError, ValidationError
from models import db, enable_sqlite_foreign_keys, User
from recommender import RecommendationEngine
from schemas import RatedMovieIn, WantToWatchIn, parse_recommend_request
from text_generation import TextGenerationClient
from tmdb_client import TMDBClient

load_dotenv()


class Config:
    BASEDIR = os.path.abspath(os.path.dirname(__file__))
    DATA_DIR = os.path.join(BASEDIR, "data")

    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL") or f"sqlite:///{os.path.join(DATA_DIR, 'movies.db')}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    TMDB_API_KEY = os.getenv("TMDB_API_KEY")
    TMDB_LANGUAGE = os.getenv("TMDB_LANGUAGE", "en-US")
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4")
    OPENAI_MAX_TOKENS = int(os.getenv("OPENAI_MAX_TOKENS", "2000"))
    RECOMMENDATION_COUNT = int(os.getenv("RECOMMENDATION_COUNT", "10"))
    HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "15"))
    LOOKUP_WORKERS = int(os.getenv("LOOKUP_WORKERS", "5"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class DevelopmentConfig(Config):
    DEBUG = True
    ENV = "development"
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    DEBUG = False
    ENV = "production"


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    TMDB_API_KEY = "test-tmdb-key"
    OPENAI_API_KEY = "test-openai-key"
    LOOKUP_WORKERS = 2


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} muss eine ganze Zahl sein.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as e:
            raise ValidationError(f"{field} muss eine ganze Zahl sein.") from e
    raise ValidationError(f"{field} muss eine ganze Zahl sein.")


def _page_arg() -> int:
    page = _as_int(request.args.get("page", "1"), "page")
    if page < 1:
        raise ValidationError("page muss >= 1 sein.")
    return page


def create_app(config: Optional[type[Config]] = None) -> Flask:
    app = Flask(__name__)
    cfg_class = config or (DevelopmentConfig if os.getenv("FLASK_ENV") == "development" else ProductionConfig)
    os.makedirs(cfg_class.DATA_DIR, exist_ok=True)
    app.config.from_object(cfg_class)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> Optional[User]:
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Anmeldung erforderlich."}), 401

    with app.app_context():
        enable_sqlite_foreign_keys(db.engine)
        db.create_all()

    app.data_manager = DataManager(db.session)  # type: ignore[attr-defined]
    app.tmdb_client = TMDBClient(  # type: ignore[attr-defined]
        app.config["TMDB_API_KEY"], language=app.config["TMDB_LANGUAGE"], timeout=app.config["HTTP_TIMEOUT"]
    )
    app.text_generator = TextGenerationClient(  # type: ignore[attr-defined]
        app.config["OPENAI_API_KEY"], model=app.config["OPENAI_MODEL"], timeout=app.config["HTTP_TIMEOUT"] * 4
    )

    def dm() -> DataManager:
        return app.data_manager  # type: ignore[attr-defined]

    def engine() -> RecommendationEngine:
        return RecommendationEngine(
            dm(),
            app.tmdb_client,  # type: ignore[attr-defined]
            app.text_generator,  # type: ignore[attr-defined]
            count=app.config["RECOMMENDATION_COUNT"],
            max_tokens=app.config["OPENAI_MAX_TOKENS"],
            lookup_workers=app.config["LOOKUP_WORKERS"],
        )

    # ---------- AUTH ----------
    @app.route("/api/auth/register", methods=["POST"])
    def register():
        body = _json_body()
        user = dm().register_user(body.get("email"), body.get("password"), body.get("name"))
        login_user(user)
        return jsonify({"success": True, "user": user.to_dict()}), 201

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        body = _json_body()
        user = dm().authenticate(body.get("email"), body.get("password"))
        login_user(user)
        return jsonify({"success": True, "user": user.to_dict()})

    @app.route("/api/auth/logout", methods=["POST"])
    @login_required
    def logout():
        logout_user()
        return jsonify({"success": True})

    @app.route("/api/auth/me", methods=["GET"])
    @login_required
    def me():
        return jsonify({"user": current_user.to_dict()})

    # ---------- CATALOG ----------
    @app.route("/api/movies", methods=["GET"])
    def popular_movies():
        return jsonify(app.tmdb_client.get_popular_movies(page=_page_arg()))  # type: ignore[attr-defined]

    @app.route("/api/movies/search", methods=["GET"])
    def search_movies():
        query = (request.args.get("query") or "").strip()
        if not query:
            raise ValidationError("Suchbegriff fehlt.")
        return jsonify(app.tmdb_client.search_movies(query, page=_page_arg()))  # type: ignore[attr-defined]

    @app.route("/api/movies/<int:movie_id>", methods=["GET"])
    def movie_detail(movie_id: int):
        """Metadaten via TMDB holen und Cache-Zeile auffrischen."""
        data = app.tmdb_client.get_movie(movie_id)  # type: ignore[attr-defined]
        movie = dm().upsert_movie(movie_id, **{k: data.get(k) for k in MOVIE_FIELDS})
        payload = movie.to_dict()
        payload["poster_url"] = app.tmdb_client.get_poster_url(movie.poster_path)  # type: ignore[attr-defined]
        return jsonify(payload)

    @app.route("/api/genres", methods=["GET"])
    def genres():
        return jsonify({"genres": app.tmdb_client.get_genres()})  # type: ignore[attr-defined]

    @app.route("/api/genres/<int:genre_id>", methods=["GET"])
    def genre_movies(genre_id: int):
        return jsonify(app.tmdb_client.get_movies_by_genre(genre_id, page=_page_arg()))  # type: ignore[attr-defined]

    # ---------- RATINGS ----------
    @app.route("/api/user-ratings", methods=["GET"])
    @login_required
    def list_ratings():
        ratings = dm().get_ratings(current_user.id)
        return jsonify({"success": True, "ratings": [r.to_dict() for r in ratings]})

    @app.route("/api/user-ratings", methods=["POST"])
    @login_required
    def create_rating():
        body = _json_body()
        if body.get("movieId") is None or body.get("rating") is None:
            raise ValidationError("movieId und rating sind Pflichtfelder.")
        rating = dm().save_rating(
            current_user.id,
            _as_int(body["movieId"], "movieId"),
            _as_int(body["rating"], "rating"),
            notes=body.get("notes"),
            title=body.get("movieTitle"),
            poster_path=body.get("posterPath"),
            release_date=body.get("releaseDate"),
        )
        return jsonify({"success": True, "rating": rating.to_dict()})

    @app.route("/api/user-ratings/<int:movie_id>", methods=["GET"])
    @login_required
    def get_rating(movie_id: int):
        rating = dm().get_rating(current_user.id, movie_id)
        if not rating:
            return jsonify({"error": "Bewertung nicht gefunden."}), 404
        return jsonify({"success": True, "rating": rating.rating})

    @app.route("/api/user-ratings/<int:movie_id>", methods=["POST"])
    @login_required
    def rate_movie(movie_id: int):
        body = _json_body()
        if body.get("rating") is None:
            raise ValidationError("rating ist ein Pflichtfeld.")
        rating = dm().save_rating(
            current_user.id,
            movie_id,
            _as_int(body["rating"], "rating"),
            notes=body.get("notes"),
            title=body.get("movieTitle"),
            poster_path=body.get("posterPath"),
            release_date=body.get("releaseDate"),
        )
        return jsonify({"success": True, "rating": rating.to_dict()})

    @app.route("/api/user-ratings/<int:movie_id>", methods=["DELETE"])
    @login_required
    def delete_rating(movie_id: int):
        dm().remove_rating(current_user.id, movie_id)
        return jsonify({"success": True})

    # ---------- WANT TO WATCH ----------
    @app.route("/api/want-to-watch", methods=["GET"])
    @login_required
    def list_want_to_watch():
        entries = dm().get_want_to_watch_list(current_user.id)
        return jsonify({"success": True, "wantToWatch": [e.to_dict() for e in entries]})

    def _add_want_to_watch(movie_id: int, body: dict):
        priority = body.get("priority")
        entry = dm().add_to_want_to_watch(
            current_user.id,
            movie_id,
            priority=_as_int(priority, "priority") if priority is not None else 1,
            notes=body.get("notes"),
            title=body.get("movieTitle"),
            poster_path=body.get("posterPath"),
            release_date=body.get("releaseDate"),
        )
        return jsonify({"success": True, "item": entry.to_dict()})

    @app.route("/api/want-to-watch", methods=["POST"])
    @login_required
    def create_want_to_watch():
        body = _json_body()
        if body.get("movieId") is None:
            raise ValidationError("movieId ist ein Pflichtfeld.")
        return _add_want_to_watch(_as_int(body["movieId"], "movieId"), body)

    @app.route("/api/want-to-watch/<int:movie_id>", methods=["POST"])
    @login_required
    def add_want_to_watch(movie_id: int):
        return _add_want_to_watch(movie_id, _json_body())

    @app.route("/api/want-to-watch/<int:movie_id>", methods=["GET"])
    @login_required
    def check_want_to_watch(movie_id: int):
        entry = dm().get_want_to_watch_entry(current_user.id, movie_id)
        return jsonify({"success": True, "isInWantToWatch": entry is not None})

    @app.route("/api/want-to-watch/<int:movie_id>", methods=["DELETE"])
    @login_required
    def delete_want_to_watch(movie_id: int):
        dm().remove_from_want_to_watch(current_user.id, movie_id)
        return jsonify({"success": True})

    # ---------- RECOMMENDATIONS ----------
    @app.route("/api/recommend", methods=["POST"])
    @login_required
    def recommend():
        body = _json_body()
        req = parse_recommend_request(body)
        # fehlende Listen kommen aus den gespeicherten Daten des Users
        if "ratedMovies" in body:
            rated = req.rated_movies
        else:
            rated = [
                RatedMovieIn(movie_id=r.movie_id, rating=r.rating, title=r.movie.title)
                for r in dm().get_ratings(current_user.id)
            ]
        if "wantToWatchList" in body:
            listed = req.want_to_watch
        else:
            listed = [
                WantToWatchIn(movie_id=w.movie_id, title=w.movie.title)
                for w in dm().get_want_to_watch_list(current_user.id)
            ]
        if not rated:
            raise ValidationError("Bitte zuerst mindestens einen Film bewerten.")

        recs = engine().generate(current_user.id, rated, listed)
        return jsonify({"success": True, "recommendations": [r.to_dict() for r in recs], "count": len(recs)})

    @app.route("/api/recommendations", methods=["GET"])
    @login_required
    def list_recommendations():
        recs = dm().get_recommendations(current_user.id)
        return jsonify({"success": True, "recommendations": [r.to_dict() for r in recs], "count": len(recs)})

    @app.route("/api/recommendations/latest", methods=["GET"])
    @login_required
    def latest_recommendations():
        limit = _as_int(request.args.get("limit", "5"), "limit")
        recs = dm().get_last_recommendations(current_user.id, limit=max(1, min(limit, 50)))
        return jsonify({"success": True, "recommendations": [r.to_dict() for r in recs]})

    @app.route("/api/recommendations/<int:movie_id>", methods=["PATCH"])
    @login_required
    def mark_recommendation(movie_id: int):
        body = _json_body()
        rec = dm().mark_recommendation(
            current_user.id, movie_id, seen=body.get("seen"), acted_on=body.get("actedOn")
        )
        return jsonify({"success": True, "recommendation": rec.to_dict()})

    # ---------- ERRORS ----------
    @app.errorhandler(AppError)
    def app_error(err: AppError):
        if err.status_code >= 500:
            app.logger.error("%s: %s", type(err).__name__, err)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(404)
    def not_found(err: HTTPException):  # type: ignore[override]
        return jsonify({"error": getattr(err, "description", "Nicht gefunden.")}), 404

    @app.errorhandler(500)
    def internal_error(err: Exception):  # type: ignore[override]
        app.logger.exception("Server Error: %s", err)
        return jsonify({"error": "Interner Serverfehler."}), 500

    return app


if __name__ == "__main__":
    logging.basicConfig(level=Config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app_ = create_app()
    print("Running on http://127.0.0.1:4999 …")
    app_.run(host="127.0.0.1", port=4999, debug=app_.debug)
