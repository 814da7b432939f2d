"""001_initial_schema

Create Tweetcast tables: users, podcasts, tweets, podcast_tweets,
usage_logs, queue_jobs, queue_controls

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# JSONB on PostgreSQL, plain JSON elsewhere
json_type = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")
big_int = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    # Create users table
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("twitter_id", sa.String(100), nullable=False),
        sa.Column("twitter_username", sa.String(50), nullable=False),
        sa.Column("twitter_display_name", sa.String(100), nullable=True),
        sa.Column("twitter_profile_image", sa.String(500), nullable=True),
        sa.Column("twitter_access_token", sa.Text(), nullable=False),
        sa.Column("twitter_refresh_token", sa.Text(), nullable=True),
        sa.Column("subscription_tier", sa.String(20), nullable=False),
        sa.Column("voice_preference", sa.String(50), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("twitter_id", name="uq_users_twitter_id"),
    )

    # Create podcasts table
    op.create_table(
        "podcasts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("source_type", sa.String(20), nullable=False),
        sa.Column("source_identifier", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("audio_url", sa.String(500), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("tweet_count", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_podcasts"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_podcasts_user_id_users",
        ),
    )
    op.create_index("ix_podcasts_user_id", "podcasts", ["user_id"])
    op.create_index("ix_podcasts_status", "podcasts", ["status"])

    # Create tweets table
    op.create_table(
        "tweets",
        sa.Column("id", sa.String(50), nullable=False),
        sa.Column("author_username", sa.String(50), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("like_count", sa.Integer(), nullable=False),
        sa.Column("retweet_count", sa.Integer(), nullable=False),
        sa.Column("emotion_type", sa.String(20), nullable=True),
        sa.Column("emotion_confidence", sa.Numeric(3, 2), nullable=True),
        sa.Column("emotion_indicators", json_type, nullable=True),
        sa.Column(
            "cached_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_tweets"),
    )

    # Create podcast_tweets table
    op.create_table(
        "podcast_tweets",
        sa.Column("podcast_id", sa.Uuid(), nullable=False),
        sa.Column("tweet_id", sa.String(50), nullable=False),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("podcast_id", "tweet_id", name="pk_podcast_tweets"),
        sa.ForeignKeyConstraint(
            ["podcast_id"],
            ["podcasts.id"],
            name="fk_podcast_tweets_podcast_id_podcasts",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["tweet_id"],
            ["tweets.id"],
            name="fk_podcast_tweets_tweet_id_tweets",
        ),
    )

    # Create usage_logs table
    op.create_table(
        "usage_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("credits_used", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_usage_logs"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_usage_logs_user_id_users",
        ),
    )
    op.create_index("ix_usage_logs_user_id", "usage_logs", ["user_id"])

    # Create queue_jobs table
    op.create_table(
        "queue_jobs",
        sa.Column("seq", big_int, autoincrement=True, nullable=False),
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("job_type", sa.String(20), nullable=False),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("priority", sa.BigInteger(), nullable=False),
        sa.Column("payload", json_type, nullable=False),
        sa.Column("result", json_type, nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("attempts_made", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("backoff_type", sa.String(20), nullable=False),
        sa.Column("backoff_delay_ms", sa.BigInteger(), nullable=False),
        sa.Column("keep_completed", sa.Integer(), nullable=False),
        sa.Column("keep_failed", sa.Integer(), nullable=False),
        sa.Column("lease_token", sa.String(36), nullable=True),
        sa.Column("lease_owner", sa.String(255), nullable=True),
        sa.Column("lease_expires_ms", sa.BigInteger(), nullable=True),
        sa.Column("available_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("created_ms", sa.BigInteger(), nullable=False),
        sa.Column("processed_ms", sa.BigInteger(), nullable=True),
        sa.Column("finished_ms", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("seq", name="pk_queue_jobs"),
        sa.UniqueConstraint("id", name="uq_queue_jobs_id"),
    )
    op.create_index(
        "ix_queue_jobs_lease_order",
        "queue_jobs",
        ["job_type", "state", "priority", "seq"],
    )
    op.create_index(
        "ix_queue_jobs_finished",
        "queue_jobs",
        ["job_type", "state", "finished_ms"],
    )

    # Create queue_controls table
    op.create_table(
        "queue_controls",
        sa.Column("job_type", sa.String(20), nullable=False),
        sa.Column("paused", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("job_type", name="pk_queue_controls"),
    )


def downgrade() -> None:
    op.drop_table("queue_controls")
    op.drop_index("ix_queue_jobs_finished", table_name="queue_jobs")
    op.drop_index("ix_queue_jobs_lease_order", table_name="queue_jobs")
    op.drop_table("queue_jobs")
    op.drop_index("ix_usage_logs_user_id", table_name="usage_logs")
    op.drop_table("usage_logs")
    op.drop_table("podcast_tweets")
    op.drop_table("tweets")
    op.drop_index("ix_podcasts_status", table_name="podcasts")
    op.drop_index("ix_podcasts_user_id", table_name="podcasts")
    op.drop_table("podcasts")
    op.drop_table("users")
