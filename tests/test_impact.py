"""Tests for impact normalization and the impact calculator."""

import math

import pytest

from services.mineral_lca.benchmarks import MetalType
from services.mineral_lca.impact import (
    calculate_environmental_impact,
    efficiency_adjusted_energy,
    normalize_impact,
    sustainability_rating,
    total_material_mass,
    virgin_material_pct,
)
from services.mineral_lca.models import (
    EnvironmentalImpactRecord,
    MaterialRecord,
    ProcessingRecord,
    TransportRecord,
)


def impact(co2=1400.0, energy=1_550_000.0, water=None, waste=None):
    return EnvironmentalImpactRecord(
        co2_emissions_tons=co2, total_energy_kwh=energy, total_water_m3=water, total_waste_tons=waste
    )


class TestNormalizeImpact:

    def test_aluminium_above_co2_benchmark(self):
        result = normalize_impact(impact(), 100.0, "aluminium")

        assert result.co2_per_ton == pytest.approx(14.0)
        assert result.co2_ratio == pytest.approx(1.2174, abs=1e-4)
        assert result.co2_performance == "Worse"
        assert result.energy_ratio == pytest.approx(1.0)
        assert result.energy_performance == "Better"
        assert result.average_ratio == pytest.approx(1.1087, abs=1e-4)
        assert result.sustainability_rating == "Below Average"

    @pytest.mark.parametrize("metal", list(MetalType))
    @pytest.mark.parametrize("mass", [0, 0.0, None])
    def test_zero_or_missing_mass_returns_none(self, metal, mass):
        assert normalize_impact(impact(), mass, metal) is None

    def test_unknown_metal_returns_none(self):
        assert normalize_impact(impact(), 100.0, "gold") is None

    def test_missing_totals_return_none(self):
        assert normalize_impact(None, 100.0, "steel") is None
        assert normalize_impact(impact(co2=None), 100.0, "steel") is None
        assert normalize_impact(impact(energy=None), 100.0, "steel") is None

    def test_water_and_waste_reported_when_present(self):
        result = normalize_impact(impact(water=150_000.0, waste=15.0), 100.0, "aluminium")
        assert result.water_ratio == pytest.approx(1.0)
        assert result.waste_ratio == pytest.approx(1.0)

        bare = normalize_impact(impact(), 100.0, "aluminium")
        assert bare.water_ratio is None
        assert bare.waste_per_ton is None

    def test_exactly_at_benchmark_is_better(self):
        # 6.9 t over 3 t and 6000 kWh over 3 t are the steel benchmark
        result = normalize_impact(impact(co2=6.9, energy=6000.0), 3.0, "steel")

        assert result.co2_ratio == 1.0
        assert result.co2_performance == "Better"
        assert result.energy_ratio == 1.0
        assert result.energy_performance == "Better"
        assert result.sustainability_rating == "Average"

    def test_result_is_finite(self):
        result = normalize_impact(impact(co2=0.0, energy=0.0), 1e-9, "copper")
        assert math.isfinite(result.co2_ratio)
        assert result.sustainability_rating == "Excellent"


class TestSustainabilityRating:

    @pytest.mark.parametrize("ratio,label", [
        (0.5, "Excellent"),
        (0.7, "Excellent"),
        (0.71, "Good"),
        (0.9, "Good"),
        (1.1, "Average"),
        (1.3, "Below Average"),
        (1.31, "Poor"),
    ])
    def test_ladder(self, ratio, label):
        assert sustainability_rating(ratio) == label


class TestDerivedColumns:

    def test_virgin_material_pct(self):
        assert virgin_material_pct(30.0) == 70.0
        assert virgin_material_pct(0) == 100
        assert virgin_material_pct(None) is None

    def test_efficiency_adjusted_energy(self):
        assert efficiency_adjusted_energy(800.0, 80.0) == pytest.approx(1000.0)
        assert efficiency_adjusted_energy(800.0, 0) == 800.0
        assert efficiency_adjusted_energy(800.0, None) == 800.0
        assert efficiency_adjusted_energy(None, 80.0) is None

    def test_total_material_mass_ignores_missing_quantities(self):
        materials = [MaterialRecord(quantity_tons=60.0), MaterialRecord(quantity_tons=None), MaterialRecord(quantity_tons=40.0)]
        assert total_material_mass(materials) == 100.0
        assert total_material_mass([]) == 0


class TestCalculateEnvironmentalImpact:

    def test_copper_with_truck_transport(self):
        totals = calculate_environmental_impact(
            "copper",
            [MaterialRecord(quantity_tons=10.0)],
            [ProcessingRecord(energy_consumption_kwh=1000.0, water_usage_m3=50.0, waste_generation_tons=2.0)],
            [TransportRecord(distance_km=100.0, load_capacity_tons=10.0, mode="truck")],
        )

        # extraction 10 * 4 * 0.5 = 20 kg, processing 1000 * 0.5 = 500 kg, transport 0.089 t
        assert totals.co2_emissions_tons == pytest.approx(0.609)
        assert totals.co2_breakdown_tons["extraction"] == pytest.approx(0.02)
        assert totals.co2_breakdown_tons["processing"] == pytest.approx(0.5)
        assert totals.co2_breakdown_tons["transportation"] == pytest.approx(0.089)
        assert totals.total_energy_kwh == 1000.0
        assert totals.total_water_m3 == 50.0
        assert totals.total_waste_tons == 2.0
        assert totals.total_material_tons == 10.0

    def test_missing_processing_values_count_as_zero(self):
        totals = calculate_environmental_impact(
            "steel",
            [MaterialRecord(quantity_tons=5.0)],
            [ProcessingRecord(energy_consumption_kwh=None), ProcessingRecord(energy_consumption_kwh=200.0)],
        )
        assert totals.total_energy_kwh == 200.0
        assert totals.total_water_m3 == 0.0
        # (5 * 2 * 0.5 + 200 * 0.5) / 1000
        assert totals.co2_emissions_tons == pytest.approx(0.105)

    def test_unknown_metal_uses_default_intensity(self):
        totals = calculate_environmental_impact(
            "gold", [MaterialRecord(quantity_tons=1000.0)], [ProcessingRecord(energy_consumption_kwh=0.0)]
        )
        assert totals.co2_emissions_tons == pytest.approx(1.0)

    def test_rounding(self):
        totals = calculate_environmental_impact(
            "aluminium",
            [MaterialRecord(quantity_tons=1.0)],
            [ProcessingRecord(energy_consumption_kwh=1234.5678, water_usage_m3=1.005, waste_generation_tons=0.12345678)],
        )
        assert totals.total_energy_kwh == 1234.57
        assert totals.total_waste_tons == pytest.approx(0.123457)

    @pytest.mark.parametrize("materials,processing", [
        ([], [ProcessingRecord(energy_consumption_kwh=10.0)]),
        ([MaterialRecord(quantity_tons=1.0)], []),
    ])
    def test_requires_material_and_processing_rows(self, materials, processing):
        assert calculate_environmental_impact("steel", materials, processing) is None
