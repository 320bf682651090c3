import logging
from typing import Iterable, List, Optional, Union

from .benchmarks import (
    MetalType, get_benchmark, energy_intensity_for, transport_factor_for,
    GRID_EMISSION_FACTOR_KG_PER_KWH
)
from .models import (
    EnvironmentalImpactRecord, ImpactNormalization, ImpactTotals,
    MaterialRecord, ProcessingRecord, TransportRecord
)
from .utils import round_half_up

logger = logging.getLogger(__name__)


# (upper bound inclusive, label), checked in order
SUSTAINABILITY_RATING_LADDER = [
    (0.7, "Excellent"),
    (0.9, "Good"),
    (1.1, "Average"),
    (1.3, "Below Average"),
]
LOWEST_SUSTAINABILITY_RATING = "Poor"

# Ratios are compared against thresholds at this precision
RATIO_DIGITS = 9


def benchmark_ratio(value: float, benchmark: float) -> float:
    return round_half_up(value / benchmark, RATIO_DIGITS)


def sustainability_rating(average_ratio: float) -> str:
    """Rate the mean benchmark ratio; lower is better."""
    for upper, label in SUSTAINABILITY_RATING_LADDER:
        if average_ratio <= upper:
            return label
    return LOWEST_SUSTAINABILITY_RATING


def _performance(ratio: float) -> str:
    return "Better" if ratio <= 1 else "Worse"


def total_material_mass(materials: Iterable[MaterialRecord]) -> float:
    return sum(m.quantity_tons or 0.0 for m in materials)


def virgin_material_pct(recycled_content_pct: Optional[float]) -> Optional[float]:
    if recycled_content_pct is None:
        return None
    return 100 - recycled_content_pct


def efficiency_adjusted_energy(raw_kwh: Optional[float], efficiency_pct: Optional[float]) -> Optional[float]:
    """Energy drawn at the meter for a given useful energy and equipment efficiency."""
    if raw_kwh is None:
        return None
    if efficiency_pct and efficiency_pct > 0:
        return raw_kwh / (efficiency_pct / 100)
    return raw_kwh


def normalize_impact(
    impact: Optional[EnvironmentalImpactRecord],
    total_mass: Optional[float],
    metal_type: Union[MetalType, str, None],
) -> Optional[ImpactNormalization]:
    """
    Express impact totals per ton of material and compare them with the
    metal's benchmark.

    Returns None when the mass is zero or missing, the metal has no
    benchmark, or the CO2/energy totals are missing.
    """
    if impact is None or not total_mass or total_mass <= 0:
        return None

    benchmark = get_benchmark(metal_type)
    if benchmark is None:
        logger.debug(f"No benchmark for metal type {metal_type!r}")
        return None

    if impact.co2_emissions_tons is None or impact.total_energy_kwh is None:
        return None

    co2_per_ton = impact.co2_emissions_tons / total_mass
    energy_per_ton = impact.total_energy_kwh / total_mass
    co2_ratio = benchmark_ratio(co2_per_ton, benchmark.co2)
    energy_ratio = benchmark_ratio(energy_per_ton, benchmark.energy)

    water_per_ton = water_ratio = None
    if impact.total_water_m3 is not None:
        water_per_ton = impact.total_water_m3 / total_mass
        water_ratio = benchmark_ratio(water_per_ton, benchmark.water)

    waste_per_ton = waste_ratio = None
    if impact.total_waste_tons is not None:
        waste_per_ton = impact.total_waste_tons / total_mass
        waste_ratio = benchmark_ratio(waste_per_ton, benchmark.waste)

    average_ratio = round_half_up((co2_ratio + energy_ratio) / 2, RATIO_DIGITS)

    return ImpactNormalization(
        co2_per_ton=co2_per_ton,
        energy_per_ton=energy_per_ton,
        co2_benchmark=benchmark.co2,
        energy_benchmark=benchmark.energy,
        co2_ratio=co2_ratio,
        energy_ratio=energy_ratio,
        co2_performance=_performance(co2_ratio),
        energy_performance=_performance(energy_ratio),
        water_per_ton=water_per_ton,
        water_ratio=water_ratio,
        waste_per_ton=waste_per_ton,
        waste_ratio=waste_ratio,
        average_ratio=average_ratio,
        sustainability_rating=sustainability_rating(average_ratio),
    )


def calculate_environmental_impact(
    metal_type: Union[MetalType, str, None],
    materials: List[MaterialRecord],
    processing: List[ProcessingRecord],
    transportation: Optional[List[TransportRecord]] = None,
) -> Optional[ImpactTotals]:
    """
    Derive impact totals for an assessment from its raw rows.

    Extraction and processing emissions use the grid emission factor on the
    extraction energy intensity of the metal and on the metered processing
    energy; transport emissions use per-mode ton-km factors.
    """
    if not materials or not processing:
        return None

    transportation = transportation or []

    total_mass = total_material_mass(materials)
    total_energy = sum(p.energy_consumption_kwh or 0.0 for p in processing)
    total_water = sum(p.water_usage_m3 or 0.0 for p in processing)
    total_waste = sum(p.waste_generation_tons or 0.0 for p in processing)

    # kg CO2
    extraction_co2 = total_mass * energy_intensity_for(metal_type) * GRID_EMISSION_FACTOR_KG_PER_KWH
    processing_co2 = total_energy * GRID_EMISSION_FACTOR_KG_PER_KWH

    # t CO2
    transport_co2 = sum(
        (t.distance_km or 0.0) * (t.load_capacity_tons or 0.0) * transport_factor_for(t.mode) / 1000
        for t in transportation
    )

    co2_tons = (extraction_co2 + processing_co2) / 1000 + transport_co2

    logger.info(
        f"Impact totals for {metal_type}: mass={total_mass}t, energy={total_energy}kWh, "
        f"co2={co2_tons:.3f}t ({len(transportation)} transport legs)"
    )

    return ImpactTotals(
        co2_emissions_tons=round_half_up(co2_tons, 6),
        total_energy_kwh=round_half_up(total_energy, 2),
        total_water_m3=round_half_up(total_water, 2),
        total_waste_tons=round_half_up(total_waste, 6),
        total_material_tons=total_mass,
        co2_breakdown_tons={
            "extraction": round_half_up(extraction_co2 / 1000, 6),
            "processing": round_half_up(processing_co2 / 1000, 6),
            "transportation": round_half_up(transport_co2, 6),
        },
    )
