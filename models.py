# models.py
import sqlite3
from datetime import datetime, timezone

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()

MATCH_LEVELS = ("LOVE IT", "LIKE IT", "MAYBE", "RISKY")


def utcnow() -> datetime:
    # naive UTC, so SQLite round-trips compare equal
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignoriert ON DELETE CASCADE ohne dieses Pragma
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """Registriert das FK-Pragma nur für diese Engine."""
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _sqlite_foreign_keys)


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id            = db.Column(db.Integer, primary_key=True)
    email         = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name          = db.Column(db.String(120))
    created_at    = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at    = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    ratings = db.relationship(
        "UserRating", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    want_to_watch = db.relationship(
        "WantToWatch", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    recommendations = db.relationship(
        "Recommendation", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self):
        return f"<User {self.id}:{self.email}>"

    def to_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name}


class Movie(db.Model):
    """Lokaler Cache der TMDB-Metadaten, Primärschlüssel ist die TMDB-ID."""
    __tablename__ = "movies"

    id                   = db.Column(db.Integer, primary_key=True, autoincrement=False)
    title                = db.Column(db.String(500), nullable=False)
    overview             = db.Column(db.Text)
    poster_path          = db.Column(db.String(255))
    backdrop_path        = db.Column(db.String(255))
    release_date         = db.Column(db.String(20))
    vote_average         = db.Column(db.Float)
    vote_count           = db.Column(db.Integer)
    popularity           = db.Column(db.Float)
    runtime              = db.Column(db.Integer)
    status               = db.Column(db.String(50))
    tagline              = db.Column(db.Text)
    budget               = db.Column(db.BigInteger)
    revenue              = db.Column(db.BigInteger)
    genres               = db.Column(db.JSON)
    production_companies = db.Column(db.JSON)
    last_updated         = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Movie {self.id}:{self.title}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "overview": self.overview,
            "poster_path": self.poster_path,
            "backdrop_path": self.backdrop_path,
            "release_date": self.release_date,
            "vote_average": self.vote_average,
            "vote_count": self.vote_count,
            "popularity": self.popularity,
            "runtime": self.runtime,
            "status": self.status,
            "tagline": self.tagline,
            "budget": self.budget,
            "revenue": self.revenue,
            "genres": self.genres,
            "production_companies": self.production_companies,
        }


class UserRating(db.Model):
    __tablename__ = "user_ratings"

    id         = db.Column(db.Integer, primary_key=True)
    user_id    = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_id   = db.Column(db.Integer, db.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False)
    rating     = db.Column(db.Integer, nullable=False)  # 1-10
    notes      = db.Column(db.Text)
    rated_at   = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user  = db.relationship("User", back_populates="ratings")
    movie = db.relationship("Movie")

    __table_args__ = (
        db.UniqueConstraint("user_id", "movie_id", name="uq_rating_user_movie"),
    )

    def __repr__(self):
        return f"<UserRating {self.user_id}:{self.movie_id}={self.rating}>"

    def to_dict(self) -> dict:
        return {
            "movie_id": self.movie_id,
            "title": self.movie.title if self.movie else None,
            "rating": self.rating,
            "notes": self.notes,
            "rated_at": self.rated_at.isoformat() if self.rated_at else None,
        }


class WantToWatch(db.Model):
    __tablename__ = "want_to_watch"

    id         = db.Column(db.Integer, primary_key=True)
    user_id    = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_id   = db.Column(db.Integer, db.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False)
    priority   = db.Column(db.Integer, nullable=False, default=1)  # 1-5, 1 = höchste
    notes      = db.Column(db.Text)
    added_at   = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user  = db.relationship("User", back_populates="want_to_watch")
    movie = db.relationship("Movie")

    __table_args__ = (
        db.UniqueConstraint("user_id", "movie_id", name="uq_want_to_watch_user_movie"),
    )

    def __repr__(self):
        return f"<WantToWatch {self.user_id}:{self.movie_id}>"

    def to_dict(self) -> dict:
        return {
            "movie_id": self.movie_id,
            "title": self.movie.title if self.movie else None,
            "poster_path": self.movie.poster_path if self.movie else None,
            "release_date": self.movie.release_date if self.movie else None,
            "priority": self.priority,
            "notes": self.notes,
            "added_at": self.added_at.isoformat() if self.added_at else None,
        }


class Recommendation(db.Model):
    __tablename__ = "recommendations"

    id                  = db.Column(db.Integer, primary_key=True)
    user_id             = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_id            = db.Column(db.Integer, db.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False)
    reason              = db.Column(db.Text, nullable=False)
    personalized_reason = db.Column(db.Text)
    match_score         = db.Column(db.Integer)
    match_level         = db.Column(db.String(10))  # siehe MATCH_LEVELS
    enhanced_reason     = db.Column(db.Text)
    generated_at        = db.Column(db.DateTime, nullable=False, default=utcnow)
    seen                = db.Column(db.Boolean, nullable=False, default=False)
    acted_on            = db.Column(db.Boolean, nullable=False, default=False)
    created_at          = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at          = db.Column(db.DateTime, nullable=False, default=utcnow)

    user  = db.relationship("User", back_populates="recommendations")
    movie = db.relationship("Movie")

    __table_args__ = (
        db.UniqueConstraint("user_id", "movie_id", name="uq_recommendation_user_movie"),
    )

    def __repr__(self):
        return f"<Recommendation {self.user_id}:{self.movie_id} {self.match_level}>"

    def to_dict(self) -> dict:
        movie = self.movie
        return {
            "movie_id": self.movie_id,
            "title": movie.title if movie else None,
            "poster_path": movie.poster_path if movie else None,
            "release_date": movie.release_date if movie else None,
            "overview": movie.overview if movie else None,
            "vote_average": movie.vote_average if movie else None,
            "vote_count": movie.vote_count if movie else None,
            "popularity": movie.popularity if movie else None,
            "reason": self.reason,
            "personalized_reason": self.personalized_reason,
            "match_score": self.match_score,
            "match_level": self.match_level,
            "enhanced_reason": self.enhanced_reason,
            "seen": self.seen,
            "acted_on": self.acted_on,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
