"""
SQLAlchemy ORM models for the tables owned by the hosted Postgres store.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True)
    display_name = Column(String(128))
    role = Column(String(32), nullable=False, default="user")
    plan = Column(String(32), nullable=False, default="free")
    subscription_id = Column(String(128))
    subscription_status = Column(String(32))
    website_limit = Column(Integer, nullable=False, default=1)
    keyword_limit = Column(Integer, nullable=False, default=100)
    website_url = Column(Text)
    sitemap_url = Column(Text)

    # OAuth tokens, one JSON document per connector
    google_auth_token = Column(JSONB)
    ga_token = Column(JSONB)
    gsc_token = Column(JSONB)
    ga4_property_id = Column(String(64))
    ga4_property_name = Column(String(255))
    gsc_site_url = Column(Text)

    llm_provider = Column(String(32))
    llm_model = Column(String(64))
    llm_api_key_encrypted = Column(Text)

    member_start = Column(DateTime(timezone=True))
    member_end = Column(DateTime(timezone=True))
    next_billing_date = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class PageSpeedData(Base):
    __tablename__ = "user_ps_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    url = Column(Text, nullable=False)
    strategy = Column(String(16), default="mobile")
    performance = Column(Integer)
    accessibility = Column(Integer)
    seo = Column(Integer)
    best_practices = Column(Integer)
    metrics = Column(JSONB, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (Index("ix_user_ps_data_user_created", "user_id", "created_at"),)


class GAData(Base):
    __tablename__ = "ga_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date = Column(String(10), nullable=False)
    page_path = Column(Text)
    device_category = Column(String(32))
    channel_group = Column(String(64))
    country = Column(String(64))
    views = Column(Integer, default=0)
    active_users = Column(Integer, default=0)
    new_users = Column(Integer, default=0)
    sessions = Column(Integer, default=0)
    views_per_user = Column(Float)
    avg_engagement_time = Column(Float)
    bounce_rate = Column(Float)
    engagement_rate = Column(Float)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (Index("ix_ga_data_user_created", "user_id", "created_at"),)


class GSCData(Base):
    __tablename__ = "gsc_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date = Column(String(10), nullable=False)
    query = Column(Text)
    page = Column(Text)
    country = Column(String(64))
    device = Column(String(32))
    clicks = Column(Integer, default=0)
    impressions = Column(Integer, default=0)
    ctr = Column(Float)
    position = Column(Float)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (Index("ix_gsc_data_user_created", "user_id", "created_at"),)


class Usage(Base):
    __tablename__ = "usage"

    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    websites_used = Column(Integer, nullable=False, default=0)
    keywords_used = Column(Integer, nullable=False, default=0)
    pagespeed_scans = Column(Integer, nullable=False, default=0)
    ai_requests = Column(Integer, nullable=False, default=0)
    period_start = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_id = Column(String(128), unique=True, nullable=False)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    subscription_id = Column(String(128))
    plan = Column(String(32))
    amount = Column(Numeric(10, 2))
    currency = Column(String(3), default="USD")
    status = Column(String(16), nullable=False, default="completed")
    transaction_date = Column(DateTime(timezone=True), default=_utcnow)


class AIConversation(Base):
    __tablename__ = "ai_conversations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_id = Column(String(64), nullable=False)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    sql_generated = Column(Text)
    chart_type = Column(String(16))
    model_used = Column(String(64))
    provider = Column(String(32))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
