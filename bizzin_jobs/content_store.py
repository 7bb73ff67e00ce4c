"""Read access to goals, milestones and journals, plus daily email content."""

import json
from datetime import date, datetime
from typing import Any, Optional

import asyncpg


def _decode_json(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


class ContentStore:
    """Database layer for the data that personalised emails are built from."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT user_id, email, first_name, last_name, full_name,
                       business_name, business_type
                FROM user_profiles
                WHERE user_id = $1
                """,
                user_id,
            )
        return dict(row) if row else None

    async def list_goals_with_milestones(self, user_id: str) -> list[dict[str, Any]]:
        """All of a user's goals, newest first, each with a milestones list."""
        async with self.db_pool.acquire() as conn:
            goal_rows = await conn.fetch(
                """
                SELECT id, title, category, status, progress, deadline, created_at
                FROM goals
                WHERE user_id = $1
                ORDER BY created_at DESC
                """,
                user_id,
            )
            milestone_rows = await conn.fetch(
                """
                SELECT id, goal_id, title, status, due_date
                FROM milestones
                WHERE user_id = $1
                """,
                user_id,
            )

        milestones_by_goal: dict[Any, list[dict[str, Any]]] = {}
        for row in milestone_rows:
            milestones_by_goal.setdefault(row["goal_id"], []).append(dict(row))

        goals = []
        for row in goal_rows:
            goal = dict(row)
            goal["milestones"] = milestones_by_goal.get(row["id"], [])
            goals.append(goal)
        return goals

    async def list_recent_journal_entries(
        self, user_id: str, since: datetime
    ) -> list[dict[str, Any]]:
        """Journal entries created since a cutoff, newest first."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, title, sentiment_data, created_at
                FROM journal_entries
                WHERE user_id = $1 AND created_at >= $2
                ORDER BY created_at DESC
                """,
                user_id,
                since,
            )

        entries = []
        for row in rows:
            entry = dict(row)
            entry["sentiment_data"] = _decode_json(entry["sentiment_data"]) or {}
            entries.append(entry)
        return entries

    async def upsert_daily_content(
        self, user_id: str, email_date: date, content: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Store today's generated content for a user.

        Re-running for the same (user_id, email_date) overwrites the
        existing row instead of creating a duplicate.
        """
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO daily_email_content (
                    user_id, email_date, journal_prompt, goal_summary,
                    business_insights, sentiment_trend, milestone_reminders,
                    personalization_data
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                ON CONFLICT (user_id, email_date) DO UPDATE
                SET journal_prompt = EXCLUDED.journal_prompt,
                    goal_summary = EXCLUDED.goal_summary,
                    business_insights = EXCLUDED.business_insights,
                    sentiment_trend = EXCLUDED.sentiment_trend,
                    milestone_reminders = EXCLUDED.milestone_reminders,
                    personalization_data = EXCLUDED.personalization_data,
                    created_at = now()
                RETURNING *
                """,
                user_id,
                email_date,
                content["journal_prompt"],
                content["goal_summary"],
                content["business_insights"],
                content["sentiment_trend"],
                content["milestone_reminders"],
                json.dumps(content["personalization_data"]),
            )

        stored = dict(row)
        stored["personalization_data"] = _decode_json(stored["personalization_data"])
        return stored

    async def mark_content_sent(self, content_id: Any, sent_at: datetime) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute(
                "UPDATE daily_email_content SET sent_at = $1 WHERE id = $2",
                sent_at,
                content_id,
            )

    async def list_enabled_email_settings(self) -> list[dict[str, Any]]:
        """Users who opted in to daily emails, with their profile address."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT s.user_id, s.send_time, s.timezone, p.email
                FROM daily_email_settings s
                JOIN user_profiles p ON p.user_id = s.user_id
                WHERE s.enabled = TRUE
                """
            )
        return [dict(row) for row in rows]
