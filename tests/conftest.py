import json

import pytest

from app import TestingConfig, create_app
from errors import ExternalAPIError
from models import db


def tmdb_movie(movie_id, title, vote_average=7.0, vote_count=600, popularity=30.0, **extra):
    movie = {
        "id": movie_id,
        "title": title,
        "overview": f"{title} overview",
        "poster_path": f"/{movie_id}.jpg",
        "backdrop_path": None,
        "release_date": "2010-07-16",
        "vote_average": vote_average,
        "vote_count": vote_count,
        "popularity": popularity,
        "genre_ids": [],
    }
    movie.update(extra)
    return movie


def ai_reply(titles):
    return json.dumps(
        [
            {"title": t, "reason": f"Because of {t}", "personalizedReason": f"You will like {t}"}
            for t in titles
        ]
    )


class FakeTMDB:
    """Stands in for TMDBClient; `catalog` maps search title -> movie dict."""

    def __init__(self, catalog=None, failing=()):
        self.catalog = dict(catalog or {})
        self.failing = set(failing)
        self.searched = []
        self.details = {}

    def ensure_configured(self):
        pass

    def find_best_match(self, title):
        self.searched.append(title)
        if title in self.failing:
            raise ExternalAPIError("TMDB Status 503")
        return self.catalog.get(title)

    def get_movie(self, movie_id):
        if movie_id not in self.details:
            raise ExternalAPIError("TMDB Status 404")
        return self.details[movie_id]

    def get_poster_url(self, poster_path, size="w500"):
        return f"https://image.tmdb.org/t/p/{size}{poster_path}" if poster_path else None


class FakeTextGenerator:
    def __init__(self, reply="[]", error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def ensure_configured(self):
        pass

    def complete(self, prompt, max_tokens=2000):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.reply


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def dm(app):
    return app.data_manager


@pytest.fixture
def user(dm):
    return dm.register_user("ana@example.com", "secret123", "Ana")


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client, user):
    resp = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "secret123"})
    assert resp.status_code == 200
    return client
