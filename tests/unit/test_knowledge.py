import pytest

from civic_rag.retrieval.knowledge import (
    BOOTH_RECORDS,
    CIVIC_PASSAGES,
    BoothDirectory,
    build_knowledge_base,
    directions_url,
    haversine_km,
    parse_booth_number,
)


def test_parse_booth_number_forms() -> None:
    assert parse_booth_number("7") == 7
    assert parse_booth_number("booth number is 12") == 12
    assert parse_booth_number("polling station #4") == 4
    assert parse_booth_number("No. 9 please") == 9
    assert parse_booth_number("where is my booth") is None


def test_knowledge_base_is_civic_passages_then_booths() -> None:
    collection = build_knowledge_base()

    assert len(collection) == len(CIVIC_PASSAGES) + len(BOOTH_RECORDS)
    assert collection[-1].id == "booth-97-010"
    assert collection[-1].metadata.section == "Polling Station 10"
    assert len({passage.id for passage in collection}) == len(collection)


def test_directory_lookup_by_number_and_range() -> None:
    directory = BoothDirectory()

    assert [booth.title for booth in directory.by_number(3)] == ["Govt. HSS Kottayam (North Wing)"]
    assert directory.by_number(42) == []
    assert directory.station_range == (1, 10)
    assert BoothDirectory([]).station_range == (0, 0)


def test_directory_text_search() -> None:
    directory = BoothDirectory()

    assert directory.search("booth 5")[0].station_number == 5
    assert [booth.station_number for booth in directory.search("Thiruvathukkal")][:2] == [1, 2]
    assert directory.search("നാട്ടകം")[0].station_number == 10
    assert len(directory.search("kottayam", limit=2)) == 2
    assert directory.search("zzz") == []


def test_directory_nearest_within_radius() -> None:
    directory = BoothDirectory()

    nearest = directory.nearest(9.6010, 76.5440)

    assert nearest[0][0].station_number == 1
    assert nearest[0][1] == pytest.approx(0.0)
    assert len(nearest) == 5
    assert [distance for _, distance in nearest] == sorted(distance for _, distance in nearest)
    assert directory.nearest(0.0, 0.0) == []


def test_haversine_and_directions() -> None:
    assert haversine_km(9.6010, 76.5440, 9.6010, 76.5440) == 0.0
    assert haversine_km(9.6010, 76.5440, 9.5601, 76.5197) == pytest.approx(5.3, abs=0.3)
    assert directions_url(9.601, 76.544) == (
        "https://www.google.com/maps/dir/?api=1&destination=9.601,76.544"
    )


def test_nearest_card_shows_distance() -> None:
    booth = BOOTH_RECORDS[0]

    card = BoothDirectory.format_nearest(booth, 1.234, "en")
    card_ml = BoothDirectory.format_nearest(booth, 1.234, "ml")

    assert card.startswith("**Polling Station 1**")
    assert "**Distance:** 1.2 km" in card
    assert "[Get Directions](https://www.google.com/maps/dir/" in card
    assert "ദൂരം" in card_ml
