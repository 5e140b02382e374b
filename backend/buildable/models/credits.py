"""Pydantic models for the credit system."""

from enum import Enum
from pydantic import BaseModel, Field


class Complexity(str, Enum):
    """Estimated complexity of a generation request."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CreditEstimate(BaseModel):
    """Pre-flight credit estimate for a generation request."""
    estimated_tokens: int = Field(..., ge=0, description="Estimated total tokens")
    estimated_credits: int = Field(..., ge=0, description="Estimated credits")
    complexity: Complexity = Field(..., description="Complexity bucket")


class CreditDeduction(BaseModel):
    """Result of deducting credits after a run."""
    tokens_used: int = Field(..., ge=0)
    credits_deducted: int = Field(..., ge=0)
    remaining_credits: int = Field(..., ge=0)
