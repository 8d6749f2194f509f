from __future__ import annotations

from enum import Enum


class Env(str, Enum):
    dev = "dev"
    prod = "prod"
    test = "test"


class Role(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    # Intake role: creates deals and reads the delivered estimate.
    USER = "USER"
    # Pricing role: owns line items, submission and approval.
    ESTIMATOR = "ESTIMATOR"
    # Execution role: reads dispatched deals only.
    DISPATCH = "DISPATCH"

    @classmethod
    def parse(cls, value: object) -> Role | None:
        """Map a raw claim/header value onto the closed role set; unknown values yield None."""
        if isinstance(value, Role):
            return value
        if value is None:
            return None
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None
