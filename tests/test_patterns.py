"""Tests for filename sequence detection and regex metadata extraction."""

import pytest

from arcstage.staging.patterns import (
    GroupMapping,
    compile_pattern,
    detect_and_order_sequence,
    extract_metadata,
    first_matching_pattern,
    natural_sort_key,
)


def test_natural_sort_orders_numbers_numerically() -> None:
    names = ["page10.jpg", "page2.jpg", "Page1.jpg"]

    assert sorted(names, key=natural_sort_key) == ["Page1.jpg", "page2.jpg", "page10.jpg"]


def test_sequence_detection_orders_by_sequence_value() -> None:
    detection = detect_and_order_sequence(["scan_10.tif", "cover.jpg", "scan_9.tif", "scan_1.tif"])

    assert detection.pattern_name == "Simple numerical sequence"
    assert detection.ordered == ("scan_1.tif", "scan_9.tif", "scan_10.tif", "cover.jpg")


def test_sequence_detection_requires_a_majority() -> None:
    detection = detect_and_order_sequence(["b.jpg", "a.jpg", "c_1.jpg"])

    assert detection.pattern is None
    assert detection.ordered == ("a.jpg", "b.jpg", "c_1.jpg")


def test_sequence_detection_requires_a_shared_base() -> None:
    detection = detect_and_order_sequence(["front_1.jpg", "back_2.jpg"])

    assert detection.pattern_name is None


def test_single_file_has_no_sequence() -> None:
    detection = detect_and_order_sequence(["only_1.jpg"])

    assert detection.pattern is None
    assert detection.ordered == ("only_1.jpg",)


def test_first_matching_pattern_prefers_numeric_sequences() -> None:
    pattern = first_matching_pattern("letter_12.jpg")

    assert pattern is not None
    assert pattern.name == "Simple numerical sequence"
    assert pattern.is_sequence


def test_group_mapping_parses_index_and_name() -> None:
    assert GroupMapping.parse("1=date") == GroupMapping(group=1, property="date")
    assert GroupMapping.parse(" place = location ") == GroupMapping(group="place", property="location")
    with pytest.raises(ValueError):
        GroupMapping.parse("date")


def test_extract_metadata_maps_groups_to_properties() -> None:
    mappings = [GroupMapping(1, "date"), GroupMapping("place", "location")]
    items = ["1921-03-04_Paris_001.jpg", "untitled.jpg"]

    results = extract_metadata(r"(\d{4}-\d{2}-\d{2})_(?P<place>[A-Za-z]+)", mappings, items)

    assert results[0].success
    assert results[0].extracted == {"date": "1921-03-04", "location": "Paris"}
    assert not results[1].success
    assert results[1].extracted == {}


def test_extract_metadata_skips_missing_groups() -> None:
    results = extract_metadata(r"(\d+)", [GroupMapping(1, "n"), GroupMapping(5, "x")], ["a12"])

    assert results[0].extracted == {"n": "12"}
    assert results[0].success


def test_invalid_pattern_fails_every_item() -> None:
    compiled = compile_pattern("([unclosed")

    assert not compiled.ok
    assert compiled.error

    results = extract_metadata("([unclosed", [GroupMapping(1, "x")], ["a", "b"])
    assert [result.success for result in results] == [False, False]


def test_empty_pattern_is_an_error() -> None:
    assert compile_pattern("").error == "Pattern is empty"
