"""
Runtime configuration for graph validation and repair.

Values come from the environment (optionally a .env file) and are validated
once, up front, so the repair loop never meets a bad setting mid-run.
"""

import os
from enum import Enum
from typing import Tuple
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_MAX_REPAIR_ITERATIONS = 3
DEFAULT_FIELD_REFERENCE_ATTRIBUTES = ("dataField", "inputField", "conditionField")


class UnreachablePolicy(str, Enum):
    REMOVE = "remove"
    CONNECT = "connect"
    KEEP = "keep"


class RepairSettings(BaseModel):
    max_repair_iterations: int = Field(default=DEFAULT_MAX_REPAIR_ITERATIONS, ge=0)
    unreachable_policy: UnreachablePolicy = UnreachablePolicy.REMOVE
    field_reference_attributes: Tuple[str, ...] = DEFAULT_FIELD_REFERENCE_ATTRIBUTES
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls) -> "RepairSettings":
        load_dotenv()
        attributes = os.getenv("FLOWGUARD_FIELD_REFERENCE_ATTRIBUTES")
        return cls(
            max_repair_iterations=int(
                os.getenv("FLOWGUARD_MAX_REPAIR_ITERATIONS", str(DEFAULT_MAX_REPAIR_ITERATIONS))
            ),
            unreachable_policy=os.getenv("FLOWGUARD_UNREACHABLE_POLICY", UnreachablePolicy.REMOVE.value).lower(),
            field_reference_attributes=(
                tuple(a.strip() for a in attributes.split(",") if a.strip())
                if attributes is not None
                else DEFAULT_FIELD_REFERENCE_ATTRIBUTES
            ),
            log_level=os.getenv("FLOWGUARD_LOG_LEVEL", "INFO"),
        )
