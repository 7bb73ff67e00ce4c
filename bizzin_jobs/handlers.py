"""Built-in email job handlers."""

from bizzin_jobs.models import EmailJob, EmailJobType
from bizzin_jobs.registry import email_job_registry


async def _record_sent(ctx, job: EmailJob) -> None:
    # Analytics must never turn a delivered email into a failed job
    try:
        await ctx["store"].record_email_analytics(job.user_id, job.job_type, ctx["clock"]())
    except Exception as e:
        ctx["logger"].warning(f"Failed to record analytics for job {job.id}: {e}")


@email_job_registry.handler(EmailJobType.DAILY_DIGEST.value)
async def daily_digest(ctx, job: EmailJob) -> bool:
    """
    Generate, store and send today's personalised digest.

    Args:
        ctx: Context dict with job, logger, renderer, mailer, store,
            content_store and clock
        job: The claimed email job
    """
    logger = ctx["logger"]
    renderer = ctx["renderer"]

    content = await renderer.generate_daily_content(job.user_id)
    email = renderer.render_daily_email(content)

    await ctx["mailer"].send(job.user_email, email.subject, email.html, email.text)
    await ctx["content_store"].mark_content_sent(content["id"], ctx["clock"]())
    await _record_sent(ctx, job)

    logger.info(f"Daily digest sent to {job.user_email} for job {job.id}")
    return True


@email_job_registry.handler(EmailJobType.GOAL_REMINDER.value)
async def goal_reminder(ctx, job: EmailJob) -> bool:
    logger = ctx["logger"]

    email = await ctx["renderer"].build_goal_reminder(job.user_id)
    if email is None:
        logger.info(f"No active goals for user {job.user_id}, skipping job {job.id}")
        return True

    await ctx["mailer"].send(job.user_email, email.subject, email.html, email.text)
    await _record_sent(ctx, job)

    logger.info(f"Goal reminder sent to {job.user_email} for job {job.id}")
    return True


@email_job_registry.handler(EmailJobType.MILESTONE_ALERT.value)
async def milestone_alert(ctx, job: EmailJob) -> bool:
    logger = ctx["logger"]

    email = await ctx["renderer"].build_milestone_alert(job.user_id)
    if email is None:
        logger.info(f"No upcoming milestones for user {job.user_id}, skipping job {job.id}")
        return True

    await ctx["mailer"].send(job.user_email, email.subject, email.html, email.text)
    await _record_sent(ctx, job)

    logger.info(f"Milestone alert sent to {job.user_email} for job {job.id}")
    return True
