# data_manager.py
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from errors import AuthError, ConflictError, DatabaseError, NotFoundError, ValidationError
from models import Movie, Recommendation, User, UserRating, WantToWatch, utcnow

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Felder des Katalog-Caches, die von außen befüllt werden dürfen
MOVIE_FIELDS = (
    "title",
    "overview",
    "poster_path",
    "backdrop_path",
    "release_date",
    "vote_average",
    "vote_count",
    "popularity",
    "runtime",
    "status",
    "tagline",
    "budget",
    "revenue",
    "genres",
    "production_companies",
)

RECOMMENDATION_FIELDS = (
    "reason",
    "personalized_reason",
    "match_score",
    "match_level",
    "enhanced_reason",
)


def merge_movie_fields(existing: Optional[Dict[str, Any]], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Coalesce-Merge: ein eingehender Wert gewinnt nur, wenn er nicht None ist.

    Fehlende oder None-Felder behalten den gespeicherten Wert.
    """
    merged = {k: (existing or {}).get(k) for k in MOVIE_FIELDS}
    for k in MOVIE_FIELDS:
        value = incoming.get(k)
        if value is not None:
            merged[k] = value
    return merged


def _validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Bewertung muss eine ganze Zahl sein.")
    if rating < 1 or rating > 10:
        raise ValidationError("Bewertung muss zwischen 1 und 10 liegen.")
    return rating


def _validate_priority(priority) -> int:
    if priority is None:
        return 1
    if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 5:
        raise ValidationError("Priorität muss zwischen 1 und 5 liegen.")
    return priority


def _validate_flag(value, field: str) -> Optional[bool]:
    if value is not None and not isinstance(value, bool):
        raise ValidationError(f"{field} muss true oder false sein.")
    return value


class DataManager:
    """
    Kapselt alle DB-Operationen (CRUD) für User, Katalog-Cache, Bewertungen,
    Merkliste und Empfehlungen.
    Wirft aussagekräftige Exceptions, die von Flask-Handlern sauber gemappt werden.
    """

    def __init__(self, session):
        self.session = session

    # --- intern: sicher committen ---
    def _commit(self):
        try:
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            raise DatabaseError(f"Datenbankfehler: {e}") from e

    # ---------- USERS ----------
    def register_user(self, email: str, password: str, name: Optional[str] = None) -> User:
        email = (email or "").strip().lower()
        if not _EMAIL_RE.match(email):
            raise ValidationError("Ungültige E-Mail-Adresse.")
        if not password or len(password) < 6:
            raise ValidationError("Passwort muss mindestens 6 Zeichen haben.")
        if User.query.filter_by(email=email).first():
            raise ConflictError("Ein Benutzer mit dieser E-Mail existiert bereits.")
        user = User(
            email=email,
            password_hash=generate_password_hash(password),
            name=(name or "").strip() or None,
        )
        self.session.add(user)
        self._commit()
        logger.info("Registered user %s", user.id)
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = User.query.filter_by(email=(email or "").strip().lower()).first()
        if not user or not check_password_hash(user.password_hash, password or ""):
            raise AuthError("E-Mail oder Passwort falsch.")
        return user

    def get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} nicht gefunden.")
        return user

    def delete_user(self, user_id: int) -> None:
        user = self.get_user(user_id)
        self.session.delete(user)
        self._commit()

    # ---------- MOVIES (Katalog-Cache) ----------
    def get_movie(self, movie_id: int) -> Optional[Movie]:
        return self.session.get(Movie, movie_id)

    def _upsert_movie(self, movie_id: int, fields: Dict[str, Any]) -> Movie:
        movie = self.get_movie(movie_id)
        if movie is None:
            merged = merge_movie_fields(None, fields)
            if merged["title"] is None:
                merged["title"] = f"Movie {movie_id}"
            movie = Movie(id=movie_id, **merged)
            self.session.add(movie)
        else:
            current = {k: getattr(movie, k) for k in MOVIE_FIELDS}
            for k, v in merge_movie_fields(current, fields).items():
                setattr(movie, k, v)
        movie.last_updated = utcnow()
        return movie

    def upsert_movie(self, movie_id: int, **fields) -> Movie:
        unknown = set(fields) - set(MOVIE_FIELDS)
        if unknown:
            raise ValidationError(f"Unbekannte Filmfelder: {', '.join(sorted(unknown))}")
        movie = self._upsert_movie(movie_id, fields)
        self._commit()
        return movie

    def _ensure_movie(self, movie_id: int, title=None, poster_path=None, release_date=None) -> Movie:
        movie = self.get_movie(movie_id)
        if movie is not None:
            return movie
        # Platzhalter, bis volle Metadaten vorliegen
        return self._upsert_movie(
            movie_id, {"title": title, "poster_path": poster_path, "release_date": release_date}
        )

    def ensure_movie(self, movie_id: int, title=None, poster_path=None, release_date=None) -> Movie:
        movie = self._ensure_movie(movie_id, title, poster_path, release_date)
        self._commit()
        return movie

    # ---------- RATINGS ----------
    def get_rating(self, user_id: int, movie_id: int) -> Optional[UserRating]:
        return UserRating.query.filter_by(user_id=user_id, movie_id=movie_id).first()

    def get_ratings(self, user_id: int) -> List[UserRating]:
        self.get_user(user_id)  # wirft NotFoundError bei Bedarf
        return (
            UserRating.query.filter_by(user_id=user_id)
            .order_by(UserRating.rated_at.asc(), UserRating.id.asc())
            .all()
        )

    def save_rating(
        self,
        user_id: int,
        movie_id: int,
        rating: int,
        notes: Optional[str] = None,
        title: Optional[str] = None,
        poster_path: Optional[str] = None,
        release_date: Optional[str] = None,
    ) -> UserRating:
        rating = _validate_rating(rating)
        self.get_user(user_id)
        self._ensure_movie(movie_id, title, poster_path, release_date)

        existing = self.get_rating(user_id, movie_id)
        now = utcnow()
        if existing:
            existing.rating = rating
            existing.notes = notes
            existing.rated_at = now
        else:
            existing = UserRating(user_id=user_id, movie_id=movie_id, rating=rating, notes=notes, rated_at=now)
            self.session.add(existing)

        # Bewertet heißt gesehen: Merkliste räumen
        WantToWatch.query.filter_by(user_id=user_id, movie_id=movie_id).delete()

        rec = Recommendation.query.filter_by(user_id=user_id, movie_id=movie_id).first()
        if rec and not rec.acted_on:
            rec.acted_on = True

        self._commit()
        return existing

    def remove_rating(self, user_id: int, movie_id: int) -> UserRating:
        existing = self.get_rating(user_id, movie_id)
        if not existing:
            raise NotFoundError(f"Keine Bewertung für Film {movie_id}.")
        self.session.delete(existing)
        self._commit()
        return existing

    # ---------- WANT TO WATCH ----------
    def get_want_to_watch_entry(self, user_id: int, movie_id: int) -> Optional[WantToWatch]:
        return WantToWatch.query.filter_by(user_id=user_id, movie_id=movie_id).first()

    def get_want_to_watch_list(self, user_id: int) -> List[WantToWatch]:
        self.get_user(user_id)
        return (
            WantToWatch.query.filter_by(user_id=user_id)
            .order_by(WantToWatch.added_at.asc(), WantToWatch.id.asc())
            .all()
        )

    def add_to_want_to_watch(
        self,
        user_id: int,
        movie_id: int,
        priority: Optional[int] = 1,
        notes: Optional[str] = None,
        title: Optional[str] = None,
        poster_path: Optional[str] = None,
        release_date: Optional[str] = None,
    ) -> WantToWatch:
        priority = _validate_priority(priority)
        self.get_user(user_id)

        existing = self.get_want_to_watch_entry(user_id, movie_id)
        if existing:
            return existing
        if self.get_rating(user_id, movie_id):
            raise ConflictError(f"Film {movie_id} ist bereits bewertet.")

        self._ensure_movie(movie_id, title, poster_path, release_date)
        entry = WantToWatch(user_id=user_id, movie_id=movie_id, priority=priority, notes=notes)
        self.session.add(entry)
        self._commit()
        return entry

    def remove_from_want_to_watch(self, user_id: int, movie_id: int) -> WantToWatch:
        entry = self.get_want_to_watch_entry(user_id, movie_id)
        if not entry:
            raise NotFoundError(f"Film {movie_id} ist nicht auf der Merkliste.")
        self.session.delete(entry)
        self._commit()
        return entry

    # ---------- RECOMMENDATIONS ----------
    def save_recommendations(self, user_id: int, candidates: Iterable[Dict[str, Any]]) -> List[Recommendation]:
        """Upsert eines ganzen Batches, ein Commit.

        Pro Kandidat: Katalogzeile per Coalesce-Merge, Empfehlung per
        (user, movie). Bestehende Empfehlungen behalten created_at,
        generated_at, seen und acted_on.
        """
        self.get_user(user_id)
        saved: List[Recommendation] = []
        now = utcnow()

        for cand in candidates:
            movie_id = cand["movie_id"]
            self._upsert_movie(movie_id, {k: cand.get(k) for k in MOVIE_FIELDS})

            rec = Recommendation.query.filter_by(user_id=user_id, movie_id=movie_id).first()
            values = {k: cand.get(k) for k in RECOMMENDATION_FIELDS}
            if rec:
                for k, v in values.items():
                    setattr(rec, k, v)
                rec.updated_at = now
            else:
                rec = Recommendation(user_id=user_id, movie_id=movie_id, generated_at=now,
                                     created_at=now, updated_at=now, **values)
                self.session.add(rec)
            saved.append(rec)

        self._commit()
        return saved

    def get_recommendations(self, user_id: int) -> List[Recommendation]:
        self.get_user(user_id)
        return (
            Recommendation.query.filter_by(user_id=user_id)
            .order_by(Recommendation.generated_at.asc(), Recommendation.id.asc())
            .all()
        )

    def get_last_recommendations(self, user_id: int, limit: int = 5) -> List[Recommendation]:
        self.get_user(user_id)
        return (
            Recommendation.query.filter_by(user_id=user_id)
            .join(Movie, Recommendation.movie_id == Movie.id)
            .order_by(Recommendation.updated_at.desc(), Recommendation.id.desc())
            .limit(limit)
            .all()
        )

    def mark_recommendation(
        self, user_id: int, movie_id: int, seen: Optional[bool] = None, acted_on: Optional[bool] = None
    ) -> Recommendation:
        seen = _validate_flag(seen, "seen")
        acted_on = _validate_flag(acted_on, "actedOn")
        rec = Recommendation.query.filter_by(user_id=user_id, movie_id=movie_id).first()
        if not rec:
            raise NotFoundError(f"Keine Empfehlung für Film {movie_id}.")
        if seen is not None:
            rec.seen = seen
        if acted_on is not None:
            rec.acted_on = acted_on
        self._commit()
        return rec
