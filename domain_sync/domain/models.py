"""
domain_sync.domain.models — Canonical Pydantic / dataclass models.

Pydantic models describe the provider snapshot (validated on decode);
dataclasses describe the values the pipeline hands back to its callers.

Import pattern::

    from domain_sync.domain.models import DomainSnapshot, DomainOutcome
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain_sync.domain.enums import ChangeType, ChannelKind


# ---------------------------------------------------------------------------
# Provider snapshot
# ---------------------------------------------------------------------------

class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if v is not None]
    if isinstance(value, (str, int, float)):
        return [str(value)]
    raise ValueError(f"expected a list, got {type(value).__name__}")


class RegistrarSection(_Section):
    name: Optional[str] = None
    url: Optional[str] = None


class WhoisSection(_Section):
    name: Optional[str] = None
    organization: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None


class DnsSection(_Section):
    name_servers: List[str] = Field(default_factory=list, alias="nameServers")
    txt_records: List[str] = Field(default_factory=list, alias="txtRecords")
    mx_records: List[str] = Field(default_factory=list, alias="mxRecords")

    @field_validator("name_servers", "txt_records", "mx_records", mode="before")
    @classmethod
    def coerce_lists(cls, value: Any) -> List[str]:
        return _as_list(value)


class IpSection(_Section):
    ipv4: List[str] = Field(default_factory=list)
    ipv6: List[str] = Field(default_factory=list)

    @field_validator("ipv4", "ipv6", mode="before")
    @classmethod
    def coerce_lists(cls, value: Any) -> List[str]:
        return _as_list(value)


class SslSection(_Section):
    issuer: Optional[str] = None
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None


class DatesSection(_Section):
    expiry_date: Optional[str] = None
    updated_date: Optional[str] = None


class DomainSnapshot(_Section):
    """
    Current truth for one domain as reported by the intelligence provider.

    Missing sections decode to empty defaults, except ``ssl`` which stays
    ``None`` so "no certificate data" is distinguishable from "blank issuer".
    """
    domain: str = ""
    registrar: RegistrarSection = Field(default_factory=RegistrarSection)
    whois: WhoisSection = Field(default_factory=WhoisSection)
    dns: DnsSection = Field(default_factory=DnsSection)
    ip_addresses: IpSection = Field(default_factory=IpSection)
    ssl: Optional[SslSection] = None
    status: List[str] = Field(default_factory=list)
    dates: DatesSection = Field(default_factory=DatesSection)

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, value: Any) -> List[str]:
        return _as_list(value)

    @field_validator("registrar", "whois", "dns", "ip_addresses", "dates", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    def dns_records(self, record_type: str) -> List[str]:
        return {
            "NS": self.dns.name_servers,
            "TXT": self.dns.txt_records,
            "MX": self.dns.mx_records,
        }[record_type]

    def ips(self, version: str) -> List[str]:
        return self.ip_addresses.ipv6 if version == "ipv6" else self.ip_addresses.ipv4


# ---------------------------------------------------------------------------
# Detection results
# ---------------------------------------------------------------------------

@dataclass
class ChangeRecord:
    """One emitted change, mirroring the ``domain_updates`` row."""
    domain_id: int
    user_id: str
    field: str
    change_type: ChangeType
    old_value: Optional[str]
    new_value: Optional[str]
    timestamp: datetime


@dataclass
class CategoryError:
    category: str
    error: str


@dataclass
class DetectionResult:
    changes: List[ChangeRecord] = field(default_factory=list)
    notification_count: int = 0
    failed_categories: List[CategoryError] = field(default_factory=list)

    @property
    def change_count(self) -> int:
        return len(self.changes)

    @property
    def ok(self) -> bool:
        return not self.failed_categories


# ---------------------------------------------------------------------------
# Orchestration results
# ---------------------------------------------------------------------------

@dataclass
class DomainOutcome:
    """Per-domain result handed back to the job queue or an ad-hoc trigger."""
    domain: str
    user_id: str
    success: bool
    change_count: int = 0
    notification_count: int = 0
    error: Optional[str] = None
    failed_categories: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.success:
            return f"{self.domain} updated successfully: {self.change_count} changes."
        return f"{self.domain} could not be updated"


@dataclass
class JobOutcome:
    job_id: int
    domain: str
    status: str                 # "succeeded" | "failed" | "skipped"
    outcome: Optional[DomainOutcome] = None


@dataclass
class BatchReport:
    jobs: List[JobOutcome] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for j in self.jobs if j.status == status)

    @property
    def succeeded(self) -> int:
        return self._count("succeeded")

    @property
    def failed(self) -> int:
        return self._count("failed")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    def summary(self) -> str:
        return f"{self.succeeded} succeeded, {self.failed} failed, {self.skipped} skipped"


# ---------------------------------------------------------------------------
# Dispatch results
# ---------------------------------------------------------------------------

@dataclass
class ChannelResult:
    kind: ChannelKind
    ok: bool
    error: Optional[str] = None


@dataclass
class DispatchResult:
    notification_id: int
    channels: List[ChannelResult] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return any(c.ok for c in self.channels)


@dataclass
class DispatchReport:
    results: List[DispatchResult] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def delivered(self) -> int:
        return sum(1 for r in self.results if r.delivered)

    @property
    def channel_failures(self) -> int:
        return sum(1 for r in self.results for c in r.channels if not c.ok)


@dataclass
class RetentionReport:
    resent: int = 0
    deleted: int = 0
