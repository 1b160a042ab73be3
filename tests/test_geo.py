"""Tests for the haversine distance metric."""

from __future__ import annotations

import pytest

from fare_estimator.core.geo import distance_km, haversine_km

from conftest import point


def test_same_point_is_zero():
    assert haversine_km(45.5, -73.6, 45.5, -73.6) == 0.0


def test_new_york_to_london():
    assert haversine_km(40.7128, -74.0060, 51.5074, -0.1278) == pytest.approx(5570, abs=10)


def test_paris_to_berlin():
    assert haversine_km(48.8566, 2.3522, 52.5200, 13.4050) == pytest.approx(878, abs=5)


def test_one_degree_of_latitude():
    # 2 * pi * 6371 / 360
    assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, abs=0.01)


def test_symmetric():
    a = haversine_km(37.98, 23.72, 38.25, 21.73)
    b = haversine_km(38.25, 21.73, 37.98, 23.72)
    assert a == pytest.approx(b)


def test_distance_between_points():
    a = point(1, 48.8566, 2.3522, 0)
    b = point(1, 52.5200, 13.4050, 3600)
    assert distance_km(a, b) == pytest.approx(haversine_km(48.8566, 2.3522, 52.52, 13.405))
