"""
Alerts Package.

Condition language and alert engine for the deployment monitor.
"""

from .conditions import (
    Comparison,
    Condition,
    Identifier,
    Literal,
    Logical,
    parse_condition,
)
from .engine import (
    AlertEngine,
    AlertTransition,
)


__all__ = [
    # Conditions
    "Comparison",
    "Condition",
    "Identifier",
    "Literal",
    "Logical",
    "parse_condition",

    # Engine
    "AlertEngine",
    "AlertTransition",
]
