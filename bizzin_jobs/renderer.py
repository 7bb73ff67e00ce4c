"""Personalised email content generation and template rendering."""

import base64
import json
import logging
import math
import random
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, NamedTuple, Optional

from dateutil import parser as date_parser
from jinja2 import Environment, FileSystemLoader, Template, select_autoescape

from bizzin_jobs.config import BizzinJobsConfig
from bizzin_jobs.content_store import ContentStore
from bizzin_jobs.models import utcnow

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

DAILY_DIGEST_TEMPLATE = "daily_digest.html"
GOAL_REMINDER_TEMPLATE = "goal_reminder.html"
MILESTONE_ALERT_TEMPLATE = "milestone_alert.html"

UPCOMING_WINDOW = timedelta(days=7)
JOURNAL_LOOKBACK = timedelta(days=7)
MAX_MILESTONE_REMINDERS = 3

JOURNAL_PROMPTS = {
    "positive_improving": [
        "You've been on a positive streak! What specific actions have contributed most to your recent success?",
        "Your energy seems high lately. How can you leverage this momentum in your business goals?",
        "What's one breakthrough insight you've had recently that could transform your business approach?",
    ],
    "positive_stable": [
        "You're maintaining positive momentum. What systems or habits are keeping you in this good space?",
        "How can you build upon your current positive mindset to tackle bigger challenges?",
        "What's one area of your business that could benefit from your current optimistic outlook?",
    ],
    "neutral_stable": [
        "What's one small win from yesterday that you're proud of?",
        "If you could change one thing about your current business routine, what would it be?",
        "What's motivating you most about your business goals right now?",
    ],
    "negative_improving": [
        "You're moving in a better direction. What specific change has helped you most recently?",
        "What's one lesson from a recent challenge that will make you stronger?",
        "How are you planning to build on the positive changes you've started making?",
    ],
    "negative_declining": [
        "What's one thing going well in your business that you can focus on today?",
        "When you imagine your business thriving, what does that look like specifically?",
        "What support or resource would help you most in overcoming current challenges?",
    ],
}
FALLBACK_PROMPT_KEY = "neutral_stable"


class RenderedEmail(NamedTuple):
    subject: str
    html: str
    text: str


def _as_datetime(value: Any) -> Optional[datetime]:
    """Normalise a date, datetime or ISO string to an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = date_parser.isoparse(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise TypeError(f"Unsupported date value: {value!r}")


def _sentiment_label(entry: dict[str, Any]) -> str:
    data = entry.get("sentiment_data") or {}
    label = data.get("sentiment") or "neutral"
    return label if label in ("positive", "negative", "neutral") else "neutral"


def calculate_trend(labels: list[str]) -> str:
    """
    Compare positive fractions of the recent and older halves.

    ``labels`` must be ordered newest first. The recent half holds the
    first ceil(n/2) labels.
    """
    if len(labels) < 2:
        return "stable"

    split = math.ceil(len(labels) / 2)
    recent = labels[:split]
    older = labels[split:]

    recent_positive = recent.count("positive") / len(recent)
    older_positive = older.count("positive") / len(older)

    if recent_positive > older_positive + 0.1:
        return "improving"
    if recent_positive < older_positive - 0.1:
        return "declining"
    return "stable"


def analyze_sentiment_trend(entries: list[dict[str, Any]]) -> dict[str, Any]:
    """Summarise recorded sentiment labels of recent journal entries."""
    if not entries:
        return {"overall": "neutral", "trend": "stable", "confidence": 0}

    ordered = sorted(
        entries,
        key=lambda entry: _as_datetime(entry.get("created_at")) or datetime.min.replace(tzinfo=timezone.utc),
        reverse=True,
    )
    labels = [_sentiment_label(entry) for entry in ordered]

    positive = labels.count("positive")
    negative = labels.count("negative")
    neutral = labels.count("neutral")

    overall = "neutral"
    if positive > negative and positive > neutral:
        overall = "positive"
    elif negative > positive and negative > neutral:
        overall = "negative"

    scores = [
        float((entry.get("sentiment_data") or {}).get("confidence") or 0.5)
        for entry in ordered
    ]

    return {
        "overall": overall,
        "trend": calculate_trend(labels),
        "confidence": sum(scores) / len(scores),
        "breakdown": {"positive": positive, "negative": negative, "neutral": neutral},
    }


def select_journal_prompt(sentiment_trend: dict[str, Any], rng: random.Random) -> str:
    key = f"{sentiment_trend['overall']}_{sentiment_trend['trend']}"
    prompts = JOURNAL_PROMPTS.get(key) or JOURNAL_PROMPTS[FALLBACK_PROMPT_KEY]
    return rng.choice(prompts)


def _format_date(value: datetime) -> str:
    return value.date().isoformat()


def _upcoming_deadlines(goals: list[dict[str, Any]], now: datetime) -> list[dict[str, Any]]:
    horizon = now + UPCOMING_WINDOW
    upcoming = [
        goal
        for goal in goals
        if _as_datetime(goal.get("deadline")) and _as_datetime(goal["deadline"]) <= horizon
    ]
    return sorted(upcoming, key=lambda goal: _as_datetime(goal["deadline"]))


def generate_goal_summary(goals: list[dict[str, Any]], now: datetime) -> str:
    if not goals:
        return (
            "You haven't set any active goals yet. Consider creating your first "
            "goal to start tracking your business progress!"
        )

    active = [g for g in goals if g.get("status") != "completed"]
    completed = [g for g in goals if g.get("status") == "completed"]
    average = (
        sum(float(g.get("progress") or 0) for g in active) / len(active) if active else 0
    )

    summary = (
        f"You have {len(active)} active goals with an average progress of "
        f"{int(average + 0.5)}%."
    )

    if completed:
        summary += f" Great job completing {len(completed)} goals recently!"

    deadlines = _upcoming_deadlines(active, now)
    if deadlines:
        listed = ", ".join(
            f'"{g["title"]}" ({_format_date(_as_datetime(g["deadline"]))})' for g in deadlines
        )
        summary += f" Upcoming deadlines: {listed}."

    return summary


def generate_business_insights(
    goals: list[dict[str, Any]], sentiment_trend: dict[str, Any]
) -> str:
    insights = []

    if goals:
        completion_rate = sum(1 for g in goals if g.get("status") == "completed") / len(goals)
        if completion_rate > 0.7:
            insights.append(
                "Excellent goal completion rate! You're consistently following "
                "through on your commitments."
            )
        elif completion_rate < 0.3:
            insights.append(
                "Consider breaking down your goals into smaller, more manageable "
                "milestones to improve completion rates."
            )

    mood = (sentiment_trend.get("overall"), sentiment_trend.get("trend"))
    if mood == ("positive", "improving"):
        insights.append(
            "Your business mindset is trending positively - this is prime time "
            "to tackle challenging projects!"
        )
    elif mood == ("negative", "declining"):
        insights.append(
            "Consider focusing on self-care and smaller wins to rebuild momentum. "
            "Remember, every successful entrepreneur faces tough periods."
        )

    categories = Counter(g["category"] for g in goals if g.get("category"))
    if categories:
        top_category = categories.most_common(1)[0][0]
        insights.append(
            f"You're heavily focused on {top_category} - consider if this balance "
            "aligns with your business priorities."
        )

    if not insights:
        return "Keep building momentum with your business goals!"
    return "\n\n".join(insights)


def upcoming_milestones(goals: list[dict[str, Any]], now: datetime) -> list[dict[str, Any]]:
    """Milestones not done and due within the next week, soonest first."""
    horizon = now + UPCOMING_WINDOW
    found = []
    for goal in goals:
        for milestone in goal.get("milestones") or []:
            due = _as_datetime(milestone.get("due_date"))
            if milestone.get("status") != "done" and due and due <= horizon:
                found.append({**milestone, "goal_title": goal.get("title"), "due": due})
    return sorted(found, key=lambda m: m["due"])


def generate_milestone_reminders(goals: list[dict[str, Any]], now: datetime) -> str:
    milestones = upcoming_milestones(goals, now)
    if not milestones:
        return "No upcoming milestone deadlines this week."

    return "\n".join(
        f"• {m['title']} (Due: {_format_date(m['due'])})"
        for m in milestones[:MAX_MILESTONE_REMINDERS]
    )


def _first_name(profile: Optional[dict[str, Any]]) -> str:
    if not profile:
        return "there"
    full_name = (profile.get("full_name") or "").strip()
    if full_name:
        return full_name.split(" ")[0]
    return (profile.get("first_name") or "").strip() or "there"


def _long_date(value: datetime) -> str:
    return f"{value:%A, %B} {value.day}, {value.year}"


class EmailRenderer:
    """Builds personalised content bundles and renders them to email."""

    def __init__(
        self,
        config: BizzinJobsConfig,
        content_store: ContentStore,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.content_store = content_store
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.rng = rng or random.Random()
        self._templates: dict[str, Template] = {}

    def load_templates(self) -> None:
        """Compile the email templates shipped with the package."""
        env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        for name in (DAILY_DIGEST_TEMPLATE, GOAL_REMINDER_TEMPLATE, MILESTONE_ALERT_TEMPLATE):
            self._templates[name] = env.get_template(name)
        self.logger.info(f"Loaded {len(self._templates)} email templates")

    def _template(self, name: str) -> Template:
        template = self._templates.get(name)
        if template is None:
            raise RuntimeError(f"Email template {name} not loaded")
        return template

    def build_content(
        self,
        profile: Optional[dict[str, Any]],
        goals: list[dict[str, Any]],
        recent_entries: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Assemble the daily content bundle from already-loaded data."""
        now = self.clock()
        sentiment_trend = analyze_sentiment_trend(recent_entries)

        return {
            "journal_prompt": select_journal_prompt(sentiment_trend, self.rng),
            "goal_summary": generate_goal_summary(goals, now),
            "business_insights": generate_business_insights(goals, sentiment_trend),
            "sentiment_trend": json.dumps(sentiment_trend),
            "milestone_reminders": generate_milestone_reminders(goals, now),
            "personalization_data": {
                "userName": _first_name(profile),
                "currentDate": _long_date(now),
                "totalGoals": len(goals),
                "recentEntryCount": len(recent_entries),
                "businessType": (profile or {}).get("business_type"),
            },
        }

    async def generate_daily_content(self, user_id: str) -> dict[str, Any]:
        """Build today's content for a user and upsert it keyed by (user, date)."""
        now = self.clock()
        profile = await self.content_store.get_profile(user_id)
        goals = await self.content_store.list_goals_with_milestones(user_id)
        entries = await self.content_store.list_recent_journal_entries(
            user_id, now - JOURNAL_LOOKBACK
        )

        self.logger.debug(
            f"Generating daily content for user {user_id}: "
            f"{len(goals)} goals, {len(entries)} recent entries"
        )

        content = self.build_content(profile, goals, entries)
        return await self.content_store.upsert_daily_content(user_id, now.date(), content)

    def unsubscribe_url(self, user_id: str) -> str:
        stamp = int(self.clock().timestamp() * 1000)
        token = base64.urlsafe_b64encode(f"{user_id}:{stamp}".encode()).decode()
        return f"{self.config.base_url}/unsubscribe?token={token}"

    def render_daily_email(self, content: dict[str, Any]) -> RenderedEmail:
        now = self.clock()
        personalization = content.get("personalization_data") or {}
        html = self._template(DAILY_DIGEST_TEMPLATE).render(
            content=content,
            personalization=personalization,
            insights=content["business_insights"].split("\n\n"),
            milestone_lines=content["milestone_reminders"].split("\n"),
            base_url=self.config.base_url,
            unsubscribe_url=self.unsubscribe_url(str(content["user_id"])),
        )
        text = "\n".join(
            [
                "Daily Business Insights",
                "",
                "Journal Prompt:",
                content["journal_prompt"],
                "",
                "Goals Summary:",
                content["goal_summary"],
                "",
                "Business Insights:",
                content["business_insights"],
                "",
                "Milestone Reminders:",
                content["milestone_reminders"],
                "",
                "---",
                "Visit Bizzin to add your journal entry and update your goals!",
            ]
        )
        return RenderedEmail(
            subject=f"Your Daily Business Insights - {_format_date(now)}",
            html=html,
            text=text,
        )

    async def build_goal_reminder(self, user_id: str) -> Optional[RenderedEmail]:
        """Render a reminder for the user's active goals, or None if there are none."""
        now = self.clock()
        goals = await self.content_store.list_goals_with_milestones(user_id)
        active = [g for g in goals if g.get("status") == "active"]
        if not active:
            return None

        profile = await self.content_store.get_profile(user_id)
        deadlines = _upcoming_deadlines(active, now)
        rows = [
            {
                "title": g["title"],
                "progress": int(float(g.get("progress") or 0) + 0.5),
                "deadline": _format_date(_as_datetime(g["deadline"]))
                if _as_datetime(g.get("deadline"))
                else None,
            }
            for g in active
        ]

        html = self._template(GOAL_REMINDER_TEMPLATE).render(
            user_name=_first_name(profile),
            goals=rows,
            deadline_count=len(deadlines),
            base_url=self.config.base_url,
            unsubscribe_url=self.unsubscribe_url(user_id),
        )
        lines = [f"Hi {_first_name(profile)},", "", "Here is where your active goals stand:", ""]
        for row in rows:
            line = f"- {row['title']}: {row['progress']}%"
            if row["deadline"]:
                line += f" (deadline {row['deadline']})"
            lines.append(line)
        return RenderedEmail(
            subject=f"You have {len(active)} active goals in progress",
            html=html,
            text="\n".join(lines),
        )

    async def build_milestone_alert(self, user_id: str) -> Optional[RenderedEmail]:
        """Render an alert for milestones due this week, or None if there are none."""
        now = self.clock()
        goals = await self.content_store.list_goals_with_milestones(user_id)
        milestones = upcoming_milestones(goals, now)
        if not milestones:
            return None

        profile = await self.content_store.get_profile(user_id)
        rows = [
            {
                "title": m["title"],
                "goal_title": m["goal_title"],
                "due": _format_date(m["due"]),
                "overdue": m["due"] < now,
            }
            for m in milestones
        ]

        html = self._template(MILESTONE_ALERT_TEMPLATE).render(
            user_name=_first_name(profile),
            milestones=rows,
            base_url=self.config.base_url,
            unsubscribe_url=self.unsubscribe_url(user_id),
        )
        lines = [f"Hi {_first_name(profile)},", "", "Milestones due this week:", ""]
        lines.extend(f"• {r['title']} - {r['goal_title']} (Due: {r['due']})" for r in rows)
        return RenderedEmail(
            subject=f"{len(milestones)} milestone(s) due this week",
            html=html,
            text="\n".join(lines),
        )
