"""Verification models.

Captures the outcome of running the local check commands after an
automated fix, before anything is published.
"""

from pydantic import BaseModel, Field


class CategoryResult(BaseModel):
    """Result from a single check category."""

    category: str = Field(description="Check category name (lint, test, etc.)")
    exit_code: int = Field(description="Exit code from command")
    passed: bool = Field(description="True if exit_code == 0")
    output: str = Field(default="", description="Captured stdout+stderr")


class VerificationResult(BaseModel):
    """Aggregated results from all verification categories."""

    success: bool = Field(description="True if every category passed")
    errors: list[str] = Field(default_factory=list, description="One entry per failure")
    categories: dict[str, CategoryResult] = Field(
        default_factory=dict, description="Results keyed by category name"
    )
