"""Match-Score: ordnet einen Kandidaten anhand öffentlicher TMDB-Werte einer Stufe zu."""

from typing import Optional, Tuple

LOVE_IT = "LOVE IT"
LIKE_IT = "LIKE IT"
MAYBE = "MAYBE"
RISKY = "RISKY"

# (min_average, min_votes, points); first hit wins
_RATING_RULES = (
    (7.5, 1000, 40),
    (7.0, 500, 30),
    (6.5, 100, 20),
    (6.0, 0, 10),
)

# (popularity strictly above, points)
_POPULARITY_RULES = (
    (100, 20),
    (50, 15),
    (20, 10),
)

# (min score, level), highest first
_LEVELS = (
    (50, LOVE_IT),
    (35, LIKE_IT),
    (20, MAYBE),
)


def calculate_match_score(
    vote_average: Optional[float],
    vote_count: Optional[int],
    popularity: Optional[float] = None,
) -> Tuple[int, str]:
    """Return ``(score, level)`` for the given aggregate rating values.

    Missing values count as zero, so the function is total over
    non-negative input.
    """
    average = vote_average or 0
    votes = vote_count or 0
    pop = popularity or 0

    score = 0
    for min_average, min_votes, points in _RATING_RULES:
        if average >= min_average and votes >= min_votes:
            score += points
            break

    for threshold, points in _POPULARITY_RULES:
        if pop > threshold:
            score += points
            break

    return score, match_level(score)


def match_level(score: int) -> str:
    for minimum, level in _LEVELS:
        if score >= minimum:
            return level
    return RISKY


def create_enhanced_reason(
    title: str,
    vote_average: Optional[float],
    vote_count: Optional[int],
    popularity: Optional[float] = None,
) -> str:
    average = vote_average or 0
    votes = vote_count or 0

    if average >= 7.5:
        quality = "highly acclaimed"
    elif average >= 7.0:
        quality = "well-received"
    else:
        quality = "decent"
    reason = f'"{title}" is a {quality} film'

    if votes >= 10000:
        reason += f" with over {votes:,} ratings"
    elif votes >= 1000:
        reason += f" with {votes:,} ratings"

    if popularity and popularity > 100:
        reason += " and is currently trending"

    return reason
