"""Health and error envelope schemas shared by every route."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Liveness response. Never touches the database or the carrier."""

    status: HealthStatus = Field(description="Current health status")
    timestamp: datetime = Field(default_factory=_utc_now, description="Check timestamp")
    version: str = Field(default="0.1.0", description="API version")


class CheckResult(BaseModel):
    """Outcome of pinging one backing service."""

    model_config = ConfigDict(from_attributes=True)

    healthy: bool = Field(description="Whether the service answered")
    latency_ms: float | None = Field(default=None, description="Round trip in milliseconds")
    error: str | None = Field(default=None, description="Failure reason when unhealthy")


class ReadinessResponse(BaseModel):
    """Readiness of the order engine's two backing services.

    The database holds carts, orders and discounts. The carrier quotes
    shipping charges and books shipments; orders can still be placed while
    it is down, but the service reports itself unready.
    """

    status: HealthStatus = Field(description="Overall readiness status")
    timestamp: datetime = Field(default_factory=_utc_now, description="Check timestamp")
    database: CheckResult = Field(description="Supabase Postgres reachability")
    carrier: CheckResult = Field(description="Courier API reachability")

    @classmethod
    def from_checks(cls, database: CheckResult, carrier: CheckResult) -> "ReadinessResponse":
        ready = database.healthy and carrier.healthy
        return cls(
            status=HealthStatus.HEALTHY if ready else HealthStatus.UNHEALTHY,
            database=database,
            carrier=carrier,
        )

    @property
    def is_ready(self) -> bool:
        return self.status == HealthStatus.HEALTHY


class ErrorResponse(BaseModel):
    """Body of every APIError response.

    Each entry in details carries loc, msg and type, matching the shape
    FastAPI uses for request validation errors.
    """

    error: str = Field(description="Machine-readable error type, e.g. invalid_transition")
    message: str = Field(description="Human-readable error description")
    details: list[dict[str, Any]] | None = Field(default=None, description="Per-field error entries")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=_utc_now, description="Error timestamp")

    @classmethod
    def from_exception(
        cls,
        error_type: str,
        message: str,
        details: list[dict[str, Any]] | None = None,
        request_id: str | None = None,
    ) -> "ErrorResponse":
        """Build the envelope, normalising each detail to loc/msg/type.

        Args:
            error_type: Category or type of error.
            message: Human-readable error description.
            details: Optional list of error detail dictionaries.
            request_id: Optional request ID for tracing.

        Returns:
            ErrorResponse: Formatted error response.
        """
        normalised = None
        if details:
            normalised = []
            for d in details:
                entry: dict[str, Any] = {"msg": d.get("msg", str(d)), "type": d.get("type", "error")}
                if d.get("loc"):
                    entry["loc"] = [str(part) for part in d["loc"]]
                normalised.append(entry)

        return cls(
            error=error_type,
            message=message,
            details=normalised,
            request_id=request_id,
        )
