"""
Static per-material reference tables.

Industry benchmark intensities per ton of processed metal, plus the emission
and estimation factors used when impact totals are derived from raw records.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union


class MetalType(str, Enum):
    ALUMINIUM = "aluminium"
    COPPER = "copper"
    STEEL = "steel"


@dataclass(frozen=True)
class Benchmark:
    """Reference intensities for one metal"""
    co2: float             # t CO2 per t
    energy: float          # kWh per t
    water: float           # m3 per t
    waste: float           # t waste per t
    recycling_rate: float  # target recycled content, %


@dataclass(frozen=True)
class EstimationRange:
    min: float
    max: float


BENCHMARKS: Dict[MetalType, Benchmark] = {
    MetalType.ALUMINIUM: Benchmark(co2=11.5, energy=15500, water=1500, waste=0.15, recycling_rate=65),
    MetalType.COPPER: Benchmark(co2=4.2, energy=3800, water=350, waste=1.0, recycling_rate=55),
    MetalType.STEEL: Benchmark(co2=2.3, energy=2000, water=100, waste=0.4, recycling_rate=70),
}

# Extraction energy intensity, kWh per kg of material
ENERGY_INTENSITY_KWH_PER_KG: Dict[MetalType, float] = {
    MetalType.ALUMINIUM: 17.5,  # 15-20 kWh/kg
    MetalType.COPPER: 4.0,      # 3-5 kWh/kg
    MetalType.STEEL: 2.0,       # 1.5-2.5 kWh/kg
}
DEFAULT_ENERGY_INTENSITY_KWH_PER_KG = 2.0

# Average grid factor, kg CO2 per kWh
GRID_EMISSION_FACTOR_KG_PER_KWH = 0.5

# Transport emission factors, kg CO2 per ton-km
TRANSPORT_EMISSION_FACTORS: Dict[str, float] = {
    "truck": 0.089,
    "rail": 0.022,
    "ship": 0.015,
}
DEFAULT_TRANSPORT_EMISSION_FACTOR = TRANSPORT_EMISSION_FACTORS["truck"]

# Per-ton ranges used to fill gaps in processing records
ESTIMATION_RANGES: Dict[MetalType, Dict[str, EstimationRange]] = {
    MetalType.ALUMINIUM: {
        "energy_consumption_kwh": EstimationRange(15000, 18000),
        "water_usage_m3": EstimationRange(300, 500),
        "waste_generation_tons": EstimationRange(0.1, 0.2),
    },
    MetalType.COPPER: {
        "energy_consumption_kwh": EstimationRange(3000, 4500),
        "water_usage_m3": EstimationRange(200, 400),
        "waste_generation_tons": EstimationRange(0.8, 1.2),
    },
    MetalType.STEEL: {
        "energy_consumption_kwh": EstimationRange(1800, 2200),
        "water_usage_m3": EstimationRange(15, 25),
        "waste_generation_tons": EstimationRange(0.3, 0.5),
    },
}


def resolve_metal_type(metal_type: Union[MetalType, str, None]) -> Optional[MetalType]:
    """Map a free-form metal name onto MetalType; unknown names give None."""
    if metal_type is None:
        return None
    if isinstance(metal_type, MetalType):
        return metal_type
    try:
        return MetalType(str(metal_type).strip().lower())
    except ValueError:
        return None


def get_benchmark(metal_type: Union[MetalType, str, None]) -> Optional[Benchmark]:
    metal = resolve_metal_type(metal_type)
    return BENCHMARKS.get(metal) if metal else None


def get_estimation_ranges(metal_type: Union[MetalType, str, None]) -> Optional[Dict[str, EstimationRange]]:
    metal = resolve_metal_type(metal_type)
    return ESTIMATION_RANGES.get(metal) if metal else None


def energy_intensity_for(metal_type: Union[MetalType, str, None]) -> float:
    metal = resolve_metal_type(metal_type)
    return ENERGY_INTENSITY_KWH_PER_KG.get(metal, DEFAULT_ENERGY_INTENSITY_KWH_PER_KG)


def transport_factor_for(mode: Optional[str]) -> float:
    if not mode:
        return DEFAULT_TRANSPORT_EMISSION_FACTOR
    return TRANSPORT_EMISSION_FACTORS.get(mode.lower(), DEFAULT_TRANSPORT_EMISSION_FACTOR)
