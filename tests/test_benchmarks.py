"""Tests for the static benchmark registry."""

import pytest

from services.mineral_lca.benchmarks import (
    BENCHMARKS,
    DEFAULT_ENERGY_INTENSITY_KWH_PER_KG,
    ESTIMATION_RANGES,
    MetalType,
    energy_intensity_for,
    get_benchmark,
    get_estimation_ranges,
    resolve_metal_type,
    transport_factor_for,
)


class TestBenchmarkLookup:
    """Benchmark rows are found case-insensitively; unknown metals are not an error."""

    @pytest.mark.parametrize("metal,co2,energy,recycling", [
        ("aluminium", 11.5, 15500, 65),
        ("copper", 4.2, 3800, 55),
        ("steel", 2.3, 2000, 70),
    ])
    def test_registered_metals(self, metal, co2, energy, recycling):
        benchmark = get_benchmark(metal)
        assert benchmark.co2 == co2
        assert benchmark.energy == energy
        assert benchmark.recycling_rate == recycling

    def test_lookup_is_case_insensitive(self):
        assert get_benchmark("  Aluminium ") is BENCHMARKS[MetalType.ALUMINIUM]
        assert resolve_metal_type("STEEL") is MetalType.STEEL

    @pytest.mark.parametrize("metal", ["gold", "", None])
    def test_unknown_metal_returns_none(self, metal):
        assert get_benchmark(metal) is None
        assert get_estimation_ranges(metal) is None

    def test_every_metal_has_estimation_ranges(self):
        for metal in MetalType:
            ranges = ESTIMATION_RANGES[metal]
            assert set(ranges) == {"energy_consumption_kwh", "water_usage_m3", "waste_generation_tons"}
            for value_range in ranges.values():
                assert value_range.min < value_range.max


class TestEmissionFactors:

    def test_energy_intensity(self):
        assert energy_intensity_for("aluminium") == 17.5
        assert energy_intensity_for("copper") == 4.0
        assert energy_intensity_for("unobtainium") == DEFAULT_ENERGY_INTENSITY_KWH_PER_KG

    def test_transport_factor_falls_back_to_truck(self):
        assert transport_factor_for("rail") == 0.022
        assert transport_factor_for("SHIP") == 0.015
        assert transport_factor_for("barge") == 0.089
        assert transport_factor_for(None) == 0.089
