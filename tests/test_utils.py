from app.utils import coerce_int, genre_names, regular_seasons


def test_regular_seasons_drops_specials_and_junk():
    seasons = [
        {"season_number": 0, "name": "Specials"},
        {"season_number": 1},
        {"season_number": "2"},
        {"name": "no number"},
        "garbage",
    ]
    assert [season["season_number"] for season in regular_seasons(seasons)] == [1, "2"]


def test_coerce_int_falls_back_to_default():
    assert coerce_int("12") == 12
    assert coerce_int(None, default=0) == 0
    assert coerce_int("n/a", default=3) == 3
    assert coerce_int(True) is None


def test_genre_names_deduplicates():
    raw = [{"id": 1, "name": "Drama"}, "Drama", {"id": 2, "name": "Comedy"}, {"id": 3}]
    assert genre_names(raw) == ["Drama", "Comedy"]
    assert genre_names(None) == []
