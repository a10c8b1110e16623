"""
Canonical workload description.

Hourly usage figures shared by the normalizer and the cost calculator.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class RequestDescription:
    """Hourly request traffic in one direction (read, write or egress).
    
    Egress is only measured in bytes, so ``requests_per_hour`` may be None.
    """
    requests_per_hour: Optional[int] = None
    bytes_per_hour: int = 0

    def effective_requests_per_hour(self) -> int:
        """Request count to use in pricing formulas.
        
        A missing request count is derived from the byte volume: any
        traffic at all is at least one request per hour.
        """
        if self.requests_per_hour is not None:
            return self.requests_per_hour
        return 1 if self.bytes_per_hour > 0 else 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.requests_per_hour is not None:
            data["requests_per_hour"] = self.requests_per_hour
        data["bytes_per_hour"] = self.bytes_per_hour
        return data


@dataclass(frozen=True)
class StorageDescription:
    """On-disk footprint sampled once from table metadata."""
    data_in_bytes: int = 0
    index_in_bytes: int = 0

    @property
    def total_in_bytes(self) -> int:
        """Data plus index size."""
        return self.data_in_bytes + self.index_in_bytes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data_in_bytes": self.data_in_bytes,
            "index_in_bytes": self.index_in_bytes,
        }


@dataclass(frozen=True)
class WorkloadDescription:
    """Normalized usage snapshot of one database.
    
    All rate fields are per hour and already windowed; consumers never
    re-derive a rate from a raw duration.
    """
    read: RequestDescription = field(default_factory=RequestDescription)
    write: RequestDescription = field(default_factory=RequestDescription)
    egress: RequestDescription = field(default_factory=RequestDescription)
    storage: StorageDescription = field(default_factory=StorageDescription)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form used by the JSON and YAML reports."""
        return {
            "read": self.read.to_dict(),
            "write": self.write.to_dict(),
            "egress": self.egress.to_dict(),
            "storage": self.storage.to_dict(),
        }
