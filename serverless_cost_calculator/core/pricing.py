"""
Pricing calculations and rate management.

Converts a normalized workload into monthly usage and prices it with the
fixed per-region rates of the serverless tier.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Sequence

from .workload import WorkloadDescription

KILO = 1024
MEGA = KILO * KILO
HOURS_PER_MONTH = 730
REQUEST_UNITS_PER_MILLION = 1_000_000

# Request unit cost model: small reads, scanned bytes and writes
READ_REQUESTS_PER_RU = 8
READ_BYTES_PER_RU = 64 * KILO
WRITE_BYTES_PER_REQUEST = KILO
WRITE_RU_MULTIPLIER = 3


class InvalidRegion(ValueError):
    """Raised when a region has no entry in the pricing table."""
    def __init__(self, region: str):
        super().__init__(f"The region '{region}' is invalid")
        self.region = region


@dataclass(frozen=True)
class RegionPricing:
    """Serverless rates for one region."""
    row_based_storage_per_gib: Decimal  # $ per GiB-month of row-based storage
    request_units_per_million: Decimal  # $ per million request units
    free_credit: Decimal  # $ monthly allowance


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported regions."""
    prices: Dict[str, RegionPricing]

    def get_pricing(self, region: str) -> RegionPricing:
        """Get pricing for a specific region.

        Args:
            region: Region identifier, matched exactly

        Returns:
            RegionPricing for the region

        Raises:
            InvalidRegion: If region is not supported
        """
        if region not in self.prices:
            raise InvalidRegion(region)
        return self.prices[region]


# Fixed pricing table - no dynamic registration
PRICING_TABLE = PricingTable({
    "us-east-1": RegionPricing(
        row_based_storage_per_gib=Decimal("0.20"),
        request_units_per_million=Decimal("0.10"),
        free_credit=Decimal("6.00")
    ),
    "us-west-2": RegionPricing(
        row_based_storage_per_gib=Decimal("0.20"),
        request_units_per_million=Decimal("0.10"),
        free_credit=Decimal("6.00")
    ),
    "eu-central-1": RegionPricing(
        row_based_storage_per_gib=Decimal("0.24"),
        request_units_per_million=Decimal("0.12"),
        free_credit=Decimal("7.20")
    ),
    "ap-southeast-1": RegionPricing(
        row_based_storage_per_gib=Decimal("0.24"),
        request_units_per_million=Decimal("0.12"),
        free_credit=Decimal("7.20")
    ),
    "ap-northeast-1": RegionPricing(
        row_based_storage_per_gib=Decimal("0.24"),
        request_units_per_million=Decimal("0.12"),
        free_credit=Decimal("7.20")
    )
})


@dataclass(frozen=True)
class WorkloadUsage:
    """Billable usage derived from a WorkloadDescription.

    Figures are kept unfloored so that cost grows with every extra byte
    or request.
    """
    row_based_storage_in_mib: float
    network_egress_in_mib: float
    request_units_in_million: float


@dataclass(frozen=True)
class WorkloadEstimation:
    """Monthly cost breakdown. The free credit is not subtracted."""
    storage_cost: float
    request_units_cost: float
    free_credit: float

    @property
    def total_cost(self) -> float:
        """Monthly cost after the free credit, never negative."""
        return max(0.0, self.storage_cost + self.request_units_cost - self.free_credit)

    def to_dict(self) -> Dict[str, float]:
        return {
            "storage_cost": self.storage_cost,
            "request_units_cost": self.request_units_cost,
            "free_credit": self.free_credit,
        }


def list_regions() -> List[str]:
    """Supported regions in pricing table order."""
    return list(PRICING_TABLE.prices)


def estimate_usage(workload: WorkloadDescription) -> WorkloadUsage:
    """Convert hourly workload rates into billable usage.

    Storage is a point-in-time size. Request units are scaled to a month
    of HOURS_PER_MONTH hours; egress stays an hourly figure.

    Args:
        workload: Normalized workload description

    Returns:
        WorkloadUsage in MiB and millions of request units
    """
    read_request_units_per_hour = (
        workload.read.effective_requests_per_hour() / READ_REQUESTS_PER_RU
        + workload.read.bytes_per_hour / READ_BYTES_PER_RU
    )
    write_request_units_per_hour = (
        workload.write.effective_requests_per_hour()
        + workload.write.bytes_per_hour / WRITE_BYTES_PER_REQUEST
    ) * WRITE_RU_MULTIPLIER
    request_units_per_hour = read_request_units_per_hour + write_request_units_per_hour

    return WorkloadUsage(
        row_based_storage_in_mib=workload.storage.total_in_bytes / MEGA,
        network_egress_in_mib=workload.egress.bytes_per_hour / MEGA,
        request_units_in_million=request_units_per_hour * HOURS_PER_MONTH / REQUEST_UNITS_PER_MILLION
    )


def calculate_cost(pricing: RegionPricing, usage: WorkloadUsage) -> WorkloadEstimation:
    """Price billable usage with one region's rates.

    Egress is billed at the request unit rate, one million RUs per GiB.
    """
    storage_price = float(pricing.row_based_storage_per_gib)
    ru_price = float(pricing.request_units_per_million)

    # MiB -> GiB
    storage_cost = usage.row_based_storage_in_mib * storage_price / KILO
    request_units_cost = (usage.network_egress_in_mib / KILO + usage.request_units_in_million) * ru_price

    return WorkloadEstimation(
        storage_cost=storage_cost,
        request_units_cost=request_units_cost,
        free_credit=float(pricing.free_credit)
    )


def estimate(region: str, workload: WorkloadDescription) -> WorkloadEstimation:
    """Estimate the monthly serverless cost of a workload.

    Args:
        region: Region identifier
        workload: Normalized workload description

    Returns:
        WorkloadEstimation for the region

    Raises:
        InvalidRegion: If region is not supported
    """
    pricing = PRICING_TABLE.get_pricing(region)
    return calculate_cost(pricing, estimate_usage(workload))


def estimate_batch(
    region: str,
    workloads: Sequence[WorkloadDescription]
) -> List[WorkloadEstimation]:
    """Estimate each workload independently; results keep the input order.

    Raises:
        InvalidRegion: If region is not supported
    """
    pricing = PRICING_TABLE.get_pricing(region)
    return [calculate_cost(pricing, estimate_usage(workload)) for workload in workloads]
