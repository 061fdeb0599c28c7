"""
SQLAlchemy ORM models for linked platform accounts and their history.

Each platform owns an independent table family:

    <platform>_connections        one per (user, platform account)
    <platform>_accounts/channels  latest profile, one per connection
    <platform>_*_snapshots        one per (account, calendar day)
    <platform>_videos/media       one per (account, content id)
    <platform>_*_insights         one per (account, day, period window)

The unique constraints below are the upsert conflict keys.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# YouTube
# ═══════════════════════════════════════════════════════════════════════════════


class YouTubeConnection(Base):
    __tablename__ = "youtube_connections"
    __table_args__ = (UniqueConstraint("user_id", "channel_id"),)

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    channel_id = Column(String(64), nullable=False)
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text)
    token_expires_at = Column(DateTime(timezone=True), nullable=False)
    scopes = Column(ARRAY(Text), default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class YouTubeChannel(Base):
    __tablename__ = "youtube_channels"

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    connection_id = Column(
        UUID(as_uuid=False),
        ForeignKey("youtube_connections.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    channel_id = Column(String(64), nullable=False)
    title = Column(Text)
    description = Column(Text)
    custom_url = Column(String(256))
    published_at = Column(DateTime(timezone=True))
    thumbnail_url = Column(Text)
    banner_url = Column(Text)
    country = Column(String(8))
    subscriber_count = Column(BigInteger, default=0)
    view_count = Column(BigInteger, default=0)
    video_count = Column(Integer, default=0)
    updated_at = Column(DateTime(timezone=True), default=_now)


class YouTubeChannelSnapshot(Base):
    __tablename__ = "youtube_channel_snapshots"
    __table_args__ = (UniqueConstraint("channel_id", "snapshot_date"),)

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    channel_id = Column(
        UUID(as_uuid=False),
        ForeignKey("youtube_channels.id", ondelete="CASCADE"),
        nullable=False,
    )
    snapshot_date = Column(Date, nullable=False)
    subscriber_count = Column(BigInteger)
    view_count = Column(BigInteger)
    video_count = Column(Integer)
    created_at = Column(DateTime(timezone=True), default=_now)


class YouTubeVideo(Base):
    __tablename__ = "youtube_videos"
    __table_args__ = (UniqueConstraint("channel_id", "video_id"),)

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    channel_id = Column(
        UUID(as_uuid=False),
        ForeignKey("youtube_channels.id", ondelete="CASCADE"),
        nullable=False,
    )
    video_id = Column(String(64), nullable=False)
    title = Column(Text)
    description = Column(Text)
    published_at = Column(DateTime(timezone=True))
    thumbnail_url = Column(Text)
    duration = Column(String(32))
    privacy_status = Column(String(32))
    tags = Column(ARRAY(Text), default=list)
    view_count = Column(BigInteger, default=0)
    like_count = Column(BigInteger, default=0)
    comment_count = Column(BigInteger, default=0)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class YouTubeAnalyticsSnapshot(Base):
    __tablename__ = "youtube_analytics_snapshots"
    __table_args__ = (
        UniqueConstraint("channel_id", "snapshot_date", "period_start", "period_end"),
    )

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    channel_id = Column(
        UUID(as_uuid=False),
        ForeignKey("youtube_channels.id", ondelete="CASCADE"),
        nullable=False,
    )
    snapshot_date = Column(Date, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    views = Column(BigInteger)
    watch_time_minutes = Column(BigInteger)
    average_view_duration_seconds = Column(Float)
    average_view_percentage = Column(Float)
    impressions = Column(BigInteger)
    click_through_rate = Column(Float)
    subscribers_gained = Column(Integer)
    subscribers_lost = Column(Integer)
    likes = Column(BigInteger)
    comments = Column(BigInteger)
    shares = Column(BigInteger)
    estimated_revenue_cents = Column(BigInteger)
    demographics_json = Column(JSONB)
    traffic_sources_json = Column(JSONB)
    geography_json = Column(JSONB)
    created_at = Column(DateTime(timezone=True), default=_now)


# ═══════════════════════════════════════════════════════════════════════════════
# Instagram
# ═══════════════════════════════════════════════════════════════════════════════


class InstagramConnection(Base):
    __tablename__ = "instagram_connections"
    __table_args__ = (UniqueConstraint("user_id", "instagram_user_id"),)

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    instagram_user_id = Column(String(64), nullable=False)
    facebook_page_id = Column(String(64))
    access_token_encrypted = Column(Text, nullable=False)
    token_expires_at = Column(DateTime(timezone=True), nullable=False)
    scopes = Column(ARRAY(Text), default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class InstagramAccount(Base):
    __tablename__ = "instagram_accounts"

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    connection_id = Column(
        UUID(as_uuid=False),
        ForeignKey("instagram_connections.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    instagram_user_id = Column(String(64), nullable=False)
    username = Column(String(128))
    name = Column(Text)
    biography = Column(Text)
    profile_picture_url = Column(Text)
    website = Column(Text)
    followers_count = Column(BigInteger)
    follows_count = Column(BigInteger)
    media_count = Column(Integer)
    account_type = Column(String(32))
    updated_at = Column(DateTime(timezone=True), default=_now)


class InstagramAccountSnapshot(Base):
    __tablename__ = "instagram_account_snapshots"
    __table_args__ = (UniqueConstraint("account_id", "snapshot_date"),)

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    account_id = Column(
        UUID(as_uuid=False),
        ForeignKey("instagram_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    snapshot_date = Column(Date, nullable=False)
    followers_count = Column(BigInteger)
    follows_count = Column(BigInteger)
    media_count = Column(Integer)
    created_at = Column(DateTime(timezone=True), default=_now)


class InstagramMedia(Base):
    __tablename__ = "instagram_media"
    __table_args__ = (UniqueConstraint("account_id", "media_id"),)

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    account_id = Column(
        UUID(as_uuid=False),
        ForeignKey("instagram_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    media_id = Column(String(64), nullable=False)
    media_type = Column(String(32))
    media_product_type = Column(String(32))
    caption = Column(Text)
    permalink = Column(Text)
    thumbnail_url = Column(Text)
    media_url = Column(Text)
    timestamp = Column(DateTime(timezone=True))
    like_count = Column(BigInteger)
    comments_count = Column(BigInteger)
    plays_count = Column(BigInteger)
    reach = Column(BigInteger)
    saved = Column(BigInteger)
    shares = Column(BigInteger)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class InstagramInsightsSnapshot(Base):
    __tablename__ = "instagram_insights_snapshots"
    __table_args__ = (
        UniqueConstraint("account_id", "snapshot_date", "period_start", "period_end"),
    )

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    account_id = Column(
        UUID(as_uuid=False),
        ForeignKey("instagram_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    snapshot_date = Column(Date, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    impressions = Column(BigInteger)
    reach = Column(BigInteger)
    profile_views = Column(BigInteger)
    website_clicks = Column(BigInteger)
    email_contacts = Column(BigInteger)
    phone_call_clicks = Column(BigInteger)
    get_directions_clicks = Column(BigInteger)
    audience_city_json = Column(JSONB)
    audience_country_json = Column(JSONB)
    audience_gender_age_json = Column(JSONB)
    audience_locale_json = Column(JSONB)
    online_followers_json = Column(JSONB)
    created_at = Column(DateTime(timezone=True), default=_now)


# ═══════════════════════════════════════════════════════════════════════════════
# TikTok
# ═══════════════════════════════════════════════════════════════════════════════


class TikTokConnection(Base):
    __tablename__ = "tiktok_connections"
    __table_args__ = (UniqueConstraint("user_id", "tiktok_open_id"),)

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    tiktok_open_id = Column(String(128), nullable=False)
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text, nullable=False)
    token_expires_at = Column(DateTime(timezone=True), nullable=False)
    refresh_token_expires_at = Column(DateTime(timezone=True), nullable=False)
    scopes = Column(ARRAY(Text), default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class TikTokAccount(Base):
    __tablename__ = "tiktok_accounts"

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    connection_id = Column(
        UUID(as_uuid=False),
        ForeignKey("tiktok_connections.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    tiktok_open_id = Column(String(128), nullable=False)
    union_id = Column(String(128))
    username = Column(String(128))
    display_name = Column(Text)
    bio_description = Column(Text)
    avatar_url = Column(Text)
    avatar_large_url = Column(Text)
    profile_deep_link = Column(Text)
    follower_count = Column(BigInteger)
    following_count = Column(BigInteger)
    likes_count = Column(BigInteger)
    video_count = Column(Integer)
    is_verified = Column(Boolean)
    updated_at = Column(DateTime(timezone=True), default=_now)


class TikTokAccountSnapshot(Base):
    __tablename__ = "tiktok_account_snapshots"
    __table_args__ = (UniqueConstraint("account_id", "snapshot_date"),)

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    account_id = Column(
        UUID(as_uuid=False),
        ForeignKey("tiktok_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    snapshot_date = Column(Date, nullable=False)
    follower_count = Column(BigInteger)
    following_count = Column(BigInteger)
    likes_count = Column(BigInteger)
    video_count = Column(Integer)
    created_at = Column(DateTime(timezone=True), default=_now)


class TikTokVideo(Base):
    __tablename__ = "tiktok_videos"
    __table_args__ = (UniqueConstraint("account_id", "video_id"),)

    id = Column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    account_id = Column(
        UUID(as_uuid=False),
        ForeignKey("tiktok_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    video_id = Column(String(64), nullable=False)
    title = Column(Text)
    description = Column(Text)
    create_time = Column(DateTime(timezone=True))
    cover_image_url = Column(Text)
    share_url = Column(Text)
    embed_link = Column(Text)
    duration = Column(Integer)
    width = Column(Integer)
    height = Column(Integer)
    view_count = Column(BigInteger)
    like_count = Column(BigInteger)
    comment_count = Column(BigInteger)
    share_count = Column(BigInteger)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)
