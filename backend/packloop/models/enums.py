from __future__ import annotations

from enum import Enum


class LocationKind(str, Enum):
    RETAILER = "retailer"
    HUB = "hub"
    DROPBOX = "dropbox"


class PackagingKind(str, Enum):
    CUP = "cup"
    BOX = "box"
    JAR = "jar"


class InstanceState(str, Enum):
    """Lifecycle states of a physical packaging instance (retired is terminal)."""
    AVAILABLE = "available"
    IN_USE = "in_use"
    AT_RETAILER = "at_retailer"
    AT_HUB = "at_hub"
    WASHING = "washing"
    DAMAGED = "damaged"
    LOST = "lost"
    RETIRED = "retired"


class DepositReason(str, Enum):
    CHECKOUT_HOLD = "checkout_hold"
    RETURN_RELEASE = "return_release"
    PENALTY = "penalty"
    ADJUSTMENT = "adjustment"


class InspectionResult(str, Enum):
    PASS = "pass"
    FAIL = "fail"


class ContaminationKind(str, Enum):
    MICROBIAL = "microbial"
    CHEMICAL = "chemical"
    FOREIGN_MATTER = "foreign_matter"


class SensorType(str, Enum):
    TEMPERATURE = "temperature"
    SHOCK = "shock"
    HUMIDITY = "humidity"


def check_in(column: str, enum_cls: type[Enum]) -> str:
    """SQL check-constraint body restricting `column` to the enum's values."""
    values = ",".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"
