"""Unit tests for completion pricing strategies and distance helpers."""

import pytest

from ridehail.domain.distance import haversine_km, path_km
from ridehail.domain.pricing import (
    RATE_TABLE,
    QuotedFarePricing,
    RateTablePricing,
    pricing_for,
)


class TestPricingStrategies:
    def test_quoted_fare_kept(self):
        strategy = QuotedFarePricing()
        assert strategy.final_cost(
            car_type="economy", quoted=38.456, distance_km=50.0, duration_min=90
        ) == 38.46

    def test_quoted_fare_missing_is_zero(self):
        strategy = QuotedFarePricing()
        assert strategy.final_cost(
            car_type="economy", quoted=None, distance_km=1.0, duration_min=1
        ) == 0.0

    def test_rate_table_economy(self):
        strategy = RateTablePricing()
        # 10 + 10 km * 2.5 + 20 min * 0.5
        assert strategy.final_cost(
            car_type="economy", quoted=0, distance_km=10.0, duration_min=20
        ) == 45.0

    def test_rate_table_minimum_fare(self):
        strategy = RateTablePricing()
        assert strategy.final_cost(
            car_type="luxury", quoted=0, distance_km=0.1, duration_min=1
        ) == RATE_TABLE["luxury"].minimum

    def test_unknown_car_type_uses_economy(self):
        strategy = RateTablePricing()
        assert strategy.final_cost(
            car_type="tuk-tuk", quoted=0, distance_km=10.0, duration_min=20
        ) == 45.0


class TestPricingFor:
    def test_estimate(self):
        assert isinstance(pricing_for("estimate"), QuotedFarePricing)

    def test_rate_table(self):
        assert isinstance(pricing_for("rate_table"), RateTablePricing)

    def test_unknown(self):
        with pytest.raises(ValueError):
            pricing_for("surge")


class TestDistance:
    def test_same_point_is_zero(self):
        assert haversine_km(24.69, 46.68, 24.69, 46.68) == 0.0

    def test_one_degree_latitude(self):
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, abs=0.01)

    def test_symmetric(self):
        a = haversine_km(24.69, 46.68, 24.75, 46.62)
        b = haversine_km(24.75, 46.62, 24.69, 46.68)
        assert a == pytest.approx(b)

    def test_path_sums_hops(self):
        points = [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)]
        assert path_km(points) == pytest.approx(2 * haversine_km(0, 0, 1, 0))

    def test_path_of_one_point(self):
        assert path_km([(24.69, 46.68)]) == 0.0
