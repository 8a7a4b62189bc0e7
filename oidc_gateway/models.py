"""
Data Models Module

This module defines Pydantic models for request/response validation
and data serialization throughout the gateway.

Models are organized by functional area:
- Provider models (token endpoint responses)
- Error models (problem details)
- Health check models
"""

from datetime import datetime, timezone
from typing import Optional, Dict

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Provider Models
# ============================================================================

class TokenResponse(BaseModel):
    """Response of the provider token endpoint (code or refresh grant)."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., description="Access token for upstream calls")
    token_type: str = Field(default="Bearer", description="Token type")
    id_token: Optional[str] = Field(None, description="OIDC ID token")
    refresh_token: Optional[str] = Field(None, description="Refresh token if issued")
    expires_in: Optional[int] = Field(None, ge=0, description="Access token lifetime in seconds")


# ============================================================================
# Error Models
# ============================================================================

class ProblemDetails(BaseModel):
    """RFC 7807 problem document returned to non-HTML clients."""

    type: str = Field(default="about:blank", description="Problem type URI")
    title: str = Field(..., description="Short summary of the problem")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Check timestamp")
    checks: Optional[Dict[str, str]] = Field(None, description="Configuration check results")
