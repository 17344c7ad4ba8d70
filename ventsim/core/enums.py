from enum import Enum


class VentMode(Enum):
    """Ventilator mode enumeration."""
    PCV = "PCV"  # Pressure Control Ventilation
    VCV = "VCV"  # Volume Control Ventilation
    PSV = "PSV"  # Pressure Support Ventilation


class BreathPhase(Enum):
    """Respiratory phase of the ventilator cycle."""
    INSPIRATION = "inspiration"
    EXPIRATION = "expiration"


class LungModelType(Enum):
    BASIC = "basic"        # Single compartment
    ADVANCED = "advanced"  # Multi-compartment alveolar recruitment


class LungPreset(Enum):
    NORMAL = "normal"
    ARDS = "ards"
    COPD = "copd"
    ASTHMA = "asthma"


class ArdsSeverity(Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class Pathology(Enum):
    """Per-unit pathology flag."""
    NORMAL = "normal"
    CONSOLIDATED = "consolidated"
    AIR_TRAPPED = "air-trapped"


def parse_enum(enum_cls, value):
    """
    Resolve an enum member from a member, its value or its name.

    Raises ValueError when nothing matches.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip()
        for member in enum_cls:
            if member.value == key.lower() or member.value == key or member.name == key.upper():
                return member
    raise ValueError(f"Unknown {enum_cls.__name__}: {value!r}")
