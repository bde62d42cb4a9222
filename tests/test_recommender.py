import pytest
import responses
from responses import matchers

from conftest import FakeTextGenerator, FakeTMDB, ai_reply, tmdb_movie
from errors import ConfigurationError, EmptyRecommendationsError, ExternalAPIError, MalformedResponseError
from models import Recommendation
from recommender import RecommendationEngine, build_prompt
from schemas import RatedMovieIn, WantToWatchIn
from tmdb_client import TMDBClient

TITLES = [f"Film {i}" for i in range(1, 11)]


def _engine(dm, tmdb, gen, **kwargs):
    return RecommendationEngine(dm, tmdb, gen, lookup_workers=4, **kwargs)


@pytest.fixture
def rated():
    return [RatedMovieIn(movie_id=27205, rating=9, title="Inception"),
            RatedMovieIn(movie_id=680, rating=4, title="Pulp Fiction")]


@pytest.fixture
def catalog():
    return {t: tmdb_movie(1000 + i, t, vote_average=7.6, vote_count=1200 + i, popularity=150)
            for i, t in enumerate(TITLES)}


def test_full_batch(dm, user, rated, catalog):
    gen = FakeTextGenerator(ai_reply(TITLES))
    recs = _engine(dm, FakeTMDB(catalog), gen).generate(user.id, rated, [])
    assert [r.movie_id for r in recs] == [1000 + i for i in range(10)]
    assert recs[0].match_score == 60
    assert recs[0].match_level == "LOVE IT"
    assert recs[0].reason == "Because of Film 1"
    assert recs[0].personalized_reason == "You will like Film 1"
    assert "is currently trending" in recs[0].enhanced_reason
    assert len(gen.prompts) == 1


def test_partial_failure_keeps_order(dm, user, rated, catalog):
    # two without a hit, one erroring lookup
    del catalog["Film 2"]
    del catalog["Film 5"]
    tmdb = FakeTMDB(catalog, failing={"Film 9"})
    recs = _engine(dm, tmdb, FakeTextGenerator(ai_reply(TITLES))).generate(user.id, rated, [])
    assert len(recs) == 7
    assert [r.movie.title for r in recs] == [t for t in TITLES if t not in ("Film 2", "Film 5", "Film 9")]
    assert sorted(tmdb.searched) == sorted(TITLES)
    assert Recommendation.query.filter_by(user_id=user.id).count() == 7


def test_all_unresolved_is_an_error(dm, user, rated):
    tmdb = FakeTMDB({}, failing={"Film 1", "Film 2"})
    with pytest.raises(EmptyRecommendationsError):
        _engine(dm, tmdb, FakeTextGenerator(ai_reply(TITLES))).generate(user.id, rated, [])
    assert Recommendation.query.count() == 0


def test_empty_suggestion_list_is_an_error(dm, user, rated):
    with pytest.raises(EmptyRecommendationsError):
        _engine(dm, FakeTMDB({}), FakeTextGenerator("[]")).generate(user.id, rated, [])


def test_malformed_output_fails_batch(dm, user, rated, catalog):
    tmdb = FakeTMDB(catalog)
    gen = FakeTextGenerator('Here you go: [{"title": "Film 1"}]')
    with pytest.raises(MalformedResponseError):
        _engine(dm, tmdb, gen).generate(user.id, rated, [])
    assert tmdb.searched == []
    assert Recommendation.query.count() == 0


def test_provider_error_propagates(dm, user, rated, catalog):
    gen = FakeTextGenerator(error=ExternalAPIError("KI-Provider Status 500"))
    with pytest.raises(ExternalAPIError):
        _engine(dm, FakeTMDB(catalog), gen).generate(user.id, rated, [])


def test_missing_key_fails_before_any_call(dm, user, rated, catalog):
    class Unconfigured(FakeTextGenerator):
        def ensure_configured(self):
            raise ConfigurationError("OpenAI API key not configured")

    gen = Unconfigured(ai_reply(TITLES))
    with pytest.raises(ConfigurationError):
        _engine(dm, FakeTMDB(catalog), gen).generate(user.id, rated, [])
    assert gen.prompts == []


def test_rated_listed_and_duplicate_hits_are_skipped(dm, user, rated):
    catalog = {
        "Inception": tmdb_movie(27205, "Inception"),
        "Heat": tmdb_movie(949, "Heat"),
        "Heat 1995": tmdb_movie(949, "Heat"),
        "Arrival": tmdb_movie(329865, "Arrival"),
    }
    listed = [WantToWatchIn(movie_id=329865, title="Arrival")]
    gen = FakeTextGenerator(ai_reply(["Inception", "Heat", "Heat 1995", "Arrival"]))
    recs = _engine(dm, FakeTMDB(catalog), gen).generate(user.id, rated, listed)
    assert [r.movie_id for r in recs] == [949]


def test_batch_is_bounded_by_count(dm, user, rated, catalog):
    gen = FakeTextGenerator(ai_reply(TITLES))
    recs = _engine(dm, FakeTMDB(catalog), gen, count=3).generate(user.id, rated, [])
    assert len(recs) == 3
    assert "suggest 3 unique movie recommendations" in gen.prompts[0]


def test_regenerating_same_batch_does_not_duplicate(dm, user, rated, catalog):
    engine = _engine(dm, FakeTMDB(catalog), FakeTextGenerator(ai_reply(TITLES[:4])))
    engine.generate(user.id, rated, [])
    engine.generate(user.id, rated, [])
    assert Recommendation.query.filter_by(user_id=user.id).count() == 4


def test_titles_are_filled_from_catalog_cache(dm, user, catalog):
    dm.upsert_movie(27205, title="Inception")
    gen = FakeTextGenerator(ai_reply(TITLES[:1]))
    _engine(dm, FakeTMDB(catalog), gen).generate(
        user.id, [RatedMovieIn(movie_id=27205, rating=8)], [WantToWatchIn(movie_id=77)]
    )
    assert "- Inception (Rating: 8/10)" in gen.prompts[0]
    assert "- Movie 77" in gen.prompts[0]


def test_build_prompt_lists_both_sections():
    prompt = build_prompt([{"title": "Heat", "rating": 9}], [], 10)
    assert "- Heat (Rating: 9/10)" in prompt
    assert "User's Want-to-Watch List:\n- (none)" in prompt
    assert '"personalizedReason"' in prompt


@responses.activate
def test_unexpected_search_body_drops_only_that_title(dm, user, rated):
    search_url = f"{TMDBClient.BASE_URL}/search/movie"
    responses.add(
        responses.GET, search_url,
        match=[matchers.query_param_matcher({"query": "Film 1"}, strict_match=False)],
        json={"results": None},
    )
    responses.add(
        responses.GET, search_url,
        match=[matchers.query_param_matcher({"query": "Film 2"}, strict_match=False)],
        json={"page": 1, "results": [tmdb_movie(1002, "Film 2", vote_average=7.6, vote_count=1500)]},
    )
    gen = FakeTextGenerator(ai_reply(["Film 1", "Film 2"]))
    recs = _engine(dm, TMDBClient("k3y", timeout=1), gen).generate(user.id, rated, [])
    assert [r.movie_id for r in recs] == [1002]
