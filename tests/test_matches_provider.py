import json

from schedule_graphic.data.models import Match, Team, logo_urls, parse_matches
from schedule_graphic.data.providers.matches_file import load_current_matches


def test_parse_schedule_shape():
    [match] = parse_matches(
        [
            {
                "time": " 18:00 ",
                "tournament": "Major",
                "team1": {"name": "Natus Vincere", "logo": "https://cdn.pandascore.co/navi.png"},
                "team2": {"name": "FaZe", "logo": ""},
            }
        ]
    )
    assert match == Match(
        team1=Team(name="Natus Vincere", logo="https://cdn.pandascore.co/navi.png"),
        team2=Team(name="FaZe", logo=None),
        time="18:00",
        tournament="Major",
    )


def test_parse_upcoming_feed_shape():
    [match] = parse_matches(
        [
            {
                "id": 1,
                "event": "BLAST Premier",
                "date": "2025-06-01T18:00:00Z",
                "format": "best_of",
                "team1": {"name": "TBD", "logo": "", "score": 0},
                "team2": {"name": "G2", "logo": "", "score": 0},
            }
        ]
    )
    assert match.tournament == "BLAST Premier"
    assert match.date == "2025-06-01T18:00:00Z"
    assert match.time is None


def test_invalid_payloads():
    assert parse_matches(None) == []
    assert parse_matches("matches") == []
    assert parse_matches({"team1": {}}) == []
    assert len(parse_matches([1, "x", {}])) == 1


def test_display_name_default():
    assert Team().display_name == "TBD"
    assert Team(name="Spirit").display_name == "Spirit"


def test_logo_urls_skip_missing():
    matches = parse_matches(
        [
            {"team1": {"logo": "a"}, "team2": {"logo": ""}},
            {"team1": {"logo": "a"}, "team2": {"logo": "b"}},
        ]
    )
    assert logo_urls(matches) == ["a", "a", "b"]


def test_load_selected_matches_file(tmp_path):
    path = tmp_path / "selected_matches.json"
    path.write_text(
        json.dumps(
            {
                "selected_matches": [{"time": "20:00", "team1": {"name": "A"}, "team2": {"name": "B"}}],
                "parallel_matches": [{"time": "21:00", "team1": {"name": "C"}, "team2": {"name": "D"}}],
            }
        ),
        encoding="utf-8",
    )
    matches = load_current_matches(path)
    assert [m.team1.name for m in matches] == ["A"]


def test_load_bare_list(tmp_path):
    path = tmp_path / "matches.json"
    path.write_text(json.dumps([{"team1": {"name": "A"}, "team2": {"name": "B"}}]), encoding="utf-8")
    assert len(load_current_matches(path)) == 1


def test_missing_file_is_empty(tmp_path):
    assert load_current_matches(tmp_path / "nope.json") == []


def test_corrupt_file_is_empty(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_current_matches(path) == []


def test_default_path_from_settings(tmp_path, monkeypatch):
    from schedule_graphic.core.config import settings

    path = tmp_path / "selected.json"
    path.write_text(json.dumps({"selected_matches": [{"team1": {"name": "A"}, "team2": {}}]}), encoding="utf-8")
    monkeypatch.setattr(settings, "matches_file", str(path), raising=False)
    assert len(load_current_matches()) == 1
