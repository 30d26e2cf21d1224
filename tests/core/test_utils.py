import pytest

from livability.core.utils import cache_key, dedupe_by_name_and_distance, distance_bucket, distance_m
from tests.factories import make_item
from livability.data.base import Category


def test_distance_same_point_is_zero():
    assert distance_m(50.088, 14.4208, 50.088, 14.4208) == 0.0


def test_distance_one_degree_latitude():
    # 2 * pi * R / 360
    assert distance_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_194.9, abs=0.5)


def test_distance_is_symmetric_and_non_negative():
    a = distance_m(50.0880, 14.4208, 50.0755, 14.4378)
    b = distance_m(50.0755, 14.4378, 50.0880, 14.4208)
    assert a == pytest.approx(b)
    assert a > 0


def test_distance_antipodal_is_finite():
    assert distance_m(0.0, 0.0, 0.0, 180.0) == pytest.approx(20_015_086.8, abs=1.0)


def test_cache_key_rounds_to_four_decimals():
    assert cache_key("fsq", 50.08804, 14.42076, 1000) == "fsq_50.0880,14.4208,1000"
    assert cache_key("fsq", 50.08804, 14.42076, 1000) == cache_key("fsq", 50.088039, 14.420761, 1000)


def test_cache_key_separates_namespace_and_radius():
    assert cache_key("fsq", 50.0, 14.0, 500) != cache_key("overpass", 50.0, 14.0, 500)
    assert cache_key("fsq", 50.0, 14.0, 500) != cache_key("fsq", 50.0, 14.0, 1000)


def test_distance_bucket_rounds_half_up():
    assert distance_bucket(14) == 1
    assert distance_bucket(15) == 2
    assert distance_bucket(0) == 0


def test_dedupe_drops_same_name_in_same_bucket():
    items = [
        make_item("Albert", 101, Category.SHOPS),
        make_item("albert", 104, Category.SHOPS),
        make_item("Albert", 160, Category.SHOPS),
        make_item("Billa", 101, Category.SHOPS),
    ]
    kept = dedupe_by_name_and_distance(items)
    assert [(p.name, p.distance_m) for p in kept] == [("Albert", 101), ("Albert", 160), ("Billa", 101)]
