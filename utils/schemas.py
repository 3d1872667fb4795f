"""
Pydantic schemas for request bodies and LLM outputs.

Request fields are all optional so that a missing field reaches the route
handler and is reported with the route's own ``{"error": ...}`` message
instead of a generic validation error.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Billing
# ═══════════════════════════════════════════════════════════════════════════════


class ActivateSubscriptionRequest(_CamelModel):
    user_id: Optional[str] = Field(None, alias="userId")
    plan: Optional[str] = None
    subscription_id: Optional[str] = Field(None, alias="subscriptionId")
    order_id: Optional[str] = Field(None, alias="orderId")


class CreateSubscriptionRequest(_CamelModel):
    plan_id: Optional[str] = Field(None, alias="planId")
    user_id: Optional[str] = Field(None, alias="userId")


# ═══════════════════════════════════════════════════════════════════════════════
# Users / settings
# ═══════════════════════════════════════════════════════════════════════════════


class CreateUserRequest(BaseModel):
    """Role, plan and limits are not accepted here; new users start on free."""

    id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    website_url: Optional[str] = None
    sitemap_url: Optional[str] = None


class UpdateProfileRequest(_CamelModel):
    """Only these profile fields are editable; anything else is dropped."""

    user_id: Optional[str] = Field(None, alias="userId")
    display_name: Optional[str] = Field(None, alias="displayName")
    website_url: Optional[str] = Field(None, alias="websiteUrl")
    sitemap_url: Optional[str] = Field(None, alias="sitemapUrl")


class SaveLLMSettingsRequest(_CamelModel):
    user_id: Optional[str] = Field(None, alias="userId")
    llm_provider: Optional[str] = Field(None, alias="llmProvider")
    llm_model: Optional[str] = Field(None, alias="llmModel")
    llm_api_key: Optional[str] = Field(None, alias="llmApiKey")


class SavePropertiesRequest(_CamelModel):
    user_id: Optional[str] = Field(None, alias="userId")
    ga4_property_id: Optional[str] = Field(None, alias="ga4PropertyId")
    ga4_property_name: Optional[str] = Field(None, alias="ga4PropertyName")
    gsc_site_url: Optional[str] = Field(None, alias="gscSiteUrl")


class EncryptRequest(BaseModel):
    text: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# AI analytics
# ═══════════════════════════════════════════════════════════════════════════════


class AIAnalyticsRequest(_CamelModel):
    message: Optional[str] = None
    user_id: Optional[str] = Field(None, alias="userId")
    session_id: Optional[str] = Field(None, alias="sessionId")


class AnalyticsQueryPlan(_CamelModel):
    """JSON object the LLM must answer with."""

    sql: Optional[str] = None
    explanation: Optional[str] = None
    error: bool = False
    chart_type: Optional[str] = Field(None, alias="chartType")
    chart_config: Optional[Dict[str, Any]] = Field(None, alias="chartConfig")
