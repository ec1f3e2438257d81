"""
Meeting Groomer - CLI Entry Point

Command-line interface for the meeting lifecycle automation engine.
"""

import json
import sys

import click

from groomer.core.config import get_config
from groomer.core.database import DatabaseManager, INTEGRATION_TYPES
from groomer.core.exceptions import GroomerException
from groomer.core.logging_config import setup_logging, get_logger
from groomer.services import build_services, build_supervisor
from groomer.utils.time_utils import utc_now


logger = get_logger(__name__)


def _services():
    return build_services(get_config())


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(action: str, error: Exception):
    logger.debug(f"{action} failed", exc_info=True)
    click.echo(f"❌ Failed to {action}: {error}", err=True)
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--log-file", type=str, help="Log file path")
@click.pass_context
def cli(ctx, verbose, log_file):
    """Meeting Groomer CLI.

    Qualifies sales meetings and runs no-show, invite and email automation.
    """
    ctx.ensure_object(dict)

    log_level = "DEBUG" if verbose else "INFO"
    setup_logging(log_level=log_level, log_file=log_file)

    ctx.obj["verbose"] = verbose
    ctx.obj["log_file"] = log_file


# ============================================================================
# SCHEDULER
# ============================================================================


@cli.command()
@click.pass_context
def run(ctx):
    """Run all enabled pollers until interrupted.

    Example:
        groomer run
    """
    setup_logging(
        log_level="DEBUG" if ctx.obj["verbose"] else "INFO", log_file=ctx.obj["log_file"], log_format="poller"
    )
    cfg = get_config()
    services = build_services(cfg)
    supervisor = build_supervisor(services, cfg.app)

    if not supervisor.tasks:
        click.echo("⚠️  All pollers are disabled in config.yaml")
        return

    click.echo(f"🚀 Starting scheduler ({', '.join(t.name for t in supervisor.tasks)})")
    click.echo("⚠️  Press Ctrl+C to stop")
    supervisor.run()


# ============================================================================
# MEETING OPERATIONS
# ============================================================================


@cli.command()
@click.argument("meeting_id", type=int)
def qualify(meeting_id):
    """Run qualification for one meeting.

    Example:
        groomer qualify 42
    """
    try:
        status, reason = _services().engine.qualify_meeting(meeting_id)
        click.echo(f"✅ Meeting {meeting_id}: {status}")
        click.echo(f"   {reason}")
    except GroomerException as e:
        _fail("qualify meeting", e)


@cli.command("no-show")
@click.argument("meeting_id", type=int)
@click.option(
    "--reason",
    type=click.Choice(["did_not_attend", "cancelled_late", "rescheduled_no_show"]),
    default="did_not_attend",
    show_default=True,
)
def no_show(meeting_id, reason):
    """Mark a finished meeting as a no-show.

    Example:
        groomer no-show 42 --reason cancelled_late
    """
    try:
        meeting = _services().lifecycle.mark_no_show(meeting_id, reason)
        click.echo(f"✅ Meeting {meeting_id} marked no-show at {meeting.no_show_marked_at:%Y-%m-%d %H:%M} UTC")
    except GroomerException as e:
        _fail("mark no-show", e)


@cli.command()
@click.argument("meeting_id", type=int)
def reschedule(meeting_id):
    """Attempt an auto-reschedule for one meeting now.

    Example:
        groomer reschedule 42
    """
    try:
        result = _services().coordinator.trigger_for_meeting(meeting_id)
    except GroomerException as e:
        _fail("reschedule meeting", e)

    icon = "✅" if result.success else "⚠️ "
    click.echo(f"{icon} Meeting {meeting_id} attempt {result.attempt_number}: {result.outcome}")
    if result.proposed_time:
        click.echo(f"   Proposed: {result.proposed_time:%Y-%m-%d %H:%M} UTC")
    if result.reason:
        click.echo(f"   {result.reason}")


@cli.command()
@click.argument("meeting_id", type=int)
@click.argument("status", type=click.Choice(["qualified", "disqualified", "needs_review"]))
@click.option("--note", help="Reviewer note")
def review(meeting_id, status, note):
    """Record a manual qualification verdict.

    Example:
        groomer review 42 qualified --note "Confirmed budget on call"
    """
    try:
        meeting = _services().engine.set_manual_status(meeting_id, status, note)
        click.echo(f"✅ Meeting {meeting_id}: {meeting.status} ({meeting.qualification_reason})")
    except GroomerException as e:
        _fail("record review", e)


@cli.command()
@click.argument("user_id", type=int)
@click.option("--days-back", type=int, help="Days of past events to import")
@click.option("--days-ahead", type=int, help="Days of future events to import")
def sync(user_id, days_back, days_ahead):
    """Import calendar events for a user and qualify new meetings.

    Example:
        groomer sync 1 --days-ahead 14
    """
    cfg = get_config()
    try:
        stats = build_services(cfg).importer.import_user_events(
            user_id,
            days_back=days_back if days_back is not None else cfg.app.import_days_back,
            days_ahead=days_ahead if days_ahead is not None else cfg.app.import_days_ahead,
        )
    except GroomerException as e:
        _fail("import calendar events", e)
    click.echo(
        f"✅ {stats['fetched']} fetched, {stats['created']} new, {stats['existing']} existing, "
        f"{stats['errors']} errors"
    )


@cli.command("check-invites")
@click.argument("user_id", type=int)
@click.option("--at-risk", is_flag=True, help="List at-risk meetings after checking")
def check_invites(user_id, at_risk):
    """Refresh invite RSVPs for a user's recent meetings.

    Example:
        groomer check-invites 1 --at-risk
    """
    services = _services()
    result = services.invites.check_user(user_id)
    click.echo(f"✅ {result['checked']} checked, {result['updated']} updated")

    if at_risk:
        meetings = services.invites.get_at_risk_meetings(user_id)
        click.echo(f"\n⚠️  At-risk meetings ({len(meetings)}):")
        for meeting in meetings:
            click.echo(f"  [{meeting.id}] {meeting.start_time:%Y-%m-%d %H:%M} {meeting.title} ({meeting.invite_status})")


@cli.command()
@click.argument("user_id", type=int)
def cleanup(user_id):
    """Remove a user's disqualified meetings from their calendar.

    Example:
        groomer cleanup 1
    """
    try:
        result = _services().cleanup.cleanup_user(user_id)
    except GroomerException as e:
        _fail("clean up calendar", e)
    click.echo(f"✅ {result['deleted']} meeting(s) removed")
    for error in result["errors"]:
        click.echo(f"   • {error}")


# ============================================================================
# REPORTS
# ============================================================================


@cli.command()
@click.argument("user_id", type=int)
@click.option("--week", type=click.DateTime(formats=["%Y-%m-%d"]), help="Any day in the week (default: current)")
@click.option("--history", type=int, help="Show stored metrics for the last N weeks instead")
def metrics(user_id, week, history):
    """Weekly grooming efficiency for a user.

    Example:
        groomer metrics 1 --week 2025-03-03
    """
    grooming = _services().grooming
    if history:
        _echo_json([m.to_dict() for m in grooming.get_historical_metrics(user_id, weeks=history)])
        return

    result = grooming.compute_week(user_id, week or utc_now())
    _echo_json(result.to_dict())


@cli.command("team-metrics")
@click.argument("user_ids", type=int, nargs=-1, required=True)
@click.option("--weeks", type=int, default=4, show_default=True)
def team_metrics(user_ids, weeks):
    """Grooming efficiency across a team.

    Example:
        groomer team-metrics 1 2 3 --weeks 8
    """
    _echo_json(_services().grooming.get_team_report(list(user_ids), weeks=weeks))


@cli.command("no-show-analytics")
@click.argument("user_id", type=int)
@click.option("--start", type=click.DateTime(formats=["%Y-%m-%d"]), help="Meetings starting on/after")
@click.option("--end", type=click.DateTime(formats=["%Y-%m-%d"]), help="Meetings starting before")
def no_show_analytics(user_id, start, end):
    """No-show breakdown by hour, industry, company size and revenue.

    Example:
        groomer no-show-analytics 1 --start 2025-01-01
    """
    _echo_json(_services().analytics.get_no_show_analytics(user_id, start=start, end=end))


@cli.command("reschedule-stats")
@click.argument("user_id", type=int)
def reschedule_stats(user_id):
    """Auto-reschedule attempt totals for a user."""
    _echo_json(_services().coordinator.get_reschedule_stats(user_id))


@cli.command("queue-stats")
@click.option("--user-id", type=int, help="Limit to one user")
def queue_stats(user_id):
    """Email job queue statistics.

    Example:
        groomer queue-stats
    """
    _echo_json(_services().queue.get_queue_stats(user_id))


@cli.command("schedule-email")
@click.argument("meeting_id", type=int)
@click.option(
    "--type",
    "job_type",
    type=click.Choice(["confirmation", "reminder", "follow_up"]),
    default="confirmation",
    help="Email to queue",
)
def schedule_email(meeting_id, job_type):
    """Queue a confirmation, reminder or follow-up email for a meeting.

    Example:
        groomer schedule-email 42 --type reminder
    """
    queue = _services().queue
    schedulers = {
        "confirmation": queue.schedule_confirmation,
        "reminder": queue.schedule_reminder,
        "follow_up": queue.schedule_follow_up,
    }
    try:
        job_id = schedulers[job_type](meeting_id)
    except GroomerException as e:
        _fail("queue email", e)
    job = queue.get_job(job_id)
    click.echo(f"✅ Queued {job_type} email (job {job_id}) for {job.scheduled_at:%Y-%m-%d %H:%M} UTC")


# ============================================================================
# QUALIFICATION RULES
# ============================================================================


@cli.group()
def rule():
    """Manage qualification rules."""
    pass


@rule.command("add")
@click.argument("user_id", type=int)
@click.argument("name")
@click.argument("field", type=click.Choice(["revenue", "company_size", "industry", "budget", "company"]))
@click.argument("operator", type=click.Choice(["gte", "lte", "eq", "ne", "contains", "not_contains"]))
@click.argument("value")
@click.option("--priority", type=int, default=0, show_default=True)
def rule_add(user_id, name, field, operator, value, priority):
    """Add a qualification rule.

    Example:
        groomer rule add 1 "Enterprise revenue" revenue gte '$1,000,000' --priority 10
    """
    try:
        created = _services().rules.add_rule(user_id, name, field, operator, value, priority=priority)
        click.echo(f"✅ Created rule {created.id}: {created.field} {created.operator} {created.value!r}")
    except GroomerException as e:
        _fail("add rule", e)


@rule.command("list")
@click.argument("user_id", type=int)
@click.option("--active", "active_only", is_flag=True, help="Only active rules")
def rule_list(user_id, active_only):
    """List a user's rules in evaluation order."""
    rules = _services().rules.list_rules(user_id, active_only=active_only)
    if not rules:
        click.echo("No rules found")
        return

    click.echo(f"\n📋 Qualification Rules ({len(rules)}):")
    click.echo("-" * 80)
    for r in rules:
        state = "✅" if r.is_active else "❌"
        click.echo(f"{state} [{r.id}] p{r.priority} {r.name}: {r.field} {r.operator} {r.value!r}")
    click.echo("")


@rule.command("disable")
@click.argument("rule_id", type=int)
def rule_disable(rule_id):
    """Deactivate a rule."""
    try:
        _services().rules.set_active(rule_id, False)
        click.echo(f"✅ Rule {rule_id} deactivated")
    except GroomerException as e:
        _fail("disable rule", e)


# ============================================================================
# USERS
# ============================================================================


@cli.group()
def user():
    """Manage users, settings and stored credentials."""
    pass


@user.command("add")
@click.argument("email")
@click.option("--name", help="User display name")
def user_add(email, name):
    """Create a user."""
    try:
        manager = DatabaseManager(get_config().database.connection_string)
        created = manager.create_user(email=email, display_name=name)
        click.echo(f"✅ Created user {created.id}: {created.email}")
    except GroomerException as e:
        _fail("add user", e)


@user.command("set")
@click.argument("user_id", type=int)
@click.argument("assignments", nargs=-1, required=True)
def user_set(user_id, assignments):
    """Update settings from key=value pairs (values parsed as JSON when possible).

    Example:
        groomer user set 1 auto_reschedule_enabled=true business_hours_start=08:00
    """
    values = {}
    for assignment in assignments:
        key, sep, raw = assignment.partition("=")
        if not sep:
            _fail("update settings", ValueError(f"expected key=value, got {assignment!r}"))
        try:
            values[key] = json.loads(raw)
        except ValueError:
            values[key] = raw

    try:
        settings = _services().settings.update_settings(user_id, **values)
    except (GroomerException, ValueError) as e:
        _fail("update settings", e)
    _echo_json(settings.to_dict())


@user.command("connect")
@click.argument("user_id", type=int)
@click.argument("integration_type", type=click.Choice(list(INTEGRATION_TYPES)))
@click.option("--account-email", help="Calendar / mailbox owner")
@click.option("--access-token", help="Bearer token (Google Calendar)")
def user_connect(user_id, integration_type, account_email, access_token):
    """Store a provider credential obtained elsewhere."""
    try:
        manager = DatabaseManager(get_config().database.connection_string)
        manager.save_integration(user_id, integration_type, account_email=account_email, access_token=access_token)
        click.echo(f"✅ Saved {integration_type} integration for user {user_id}")
    except GroomerException as e:
        _fail("save integration", e)


# ============================================================================
# DATABASE MANAGEMENT
# ============================================================================


@cli.group()
def db():
    """Database management commands."""
    pass


@db.command("init")
@click.option("--drop", is_flag=True, help="Drop existing tables first (DESTRUCTIVE!)")
def db_init(drop):
    """Initialize database schema.

    Example:
        groomer db init
    """
    try:
        manager = DatabaseManager(get_config().database.connection_string)

        if drop:
            if not click.confirm("⚠️  This will drop all existing tables. Are you sure?"):
                click.echo("Aborted.")
                return
            manager.drop_tables()

        manager.create_tables()
        click.echo("✅ Database initialized successfully")
    except Exception as e:
        _fail("initialize database", e)


@db.command("status")
@click.argument("user_id", type=int)
def db_status(user_id):
    """Meeting and email job counts for a user."""
    try:
        manager = DatabaseManager(get_config().database.connection_string)
        _echo_json(manager.get_dashboard_stats(user_id))
    except Exception as e:
        _fail("get database status", e)


# ============================================================================
# CONFIGURATION
# ============================================================================


@cli.group()
def config():
    """Configuration management."""
    pass


@config.command("show")
def config_show():
    """Show current configuration (non-sensitive)."""
    cfg = get_config()

    click.echo("\n⚙️  Current Configuration")
    click.echo("=" * 80)
    click.echo("\n📊 Runtime Settings (config.yaml):")
    click.echo(f"  Email queue: every {cfg.app.email_queue_interval_seconds}s ({_on(cfg.app.email_queue_enabled)})")
    click.echo(
        f"  Auto-reschedule: every {cfg.app.auto_reschedule_interval_minutes} min "
        f"({_on(cfg.app.auto_reschedule_enabled)})"
    )
    click.echo(
        f"  Invite tracking: every {cfg.app.invite_tracking_interval_minutes} min "
        f"({_on(cfg.app.invite_tracking_enabled)})"
    )
    click.echo(
        f"  Grooming metrics: every {cfg.app.grooming_metrics_interval_minutes} min "
        f"({_on(cfg.app.grooming_metrics_enabled)})"
    )
    click.echo(
        f"  Calendar cleanup: every {cfg.app.calendar_cleanup_interval_minutes} min "
        f"({_on(cfg.app.calendar_cleanup_enabled)})"
    )
    click.echo(f"  Max email retries: {cfg.app.email_max_retries}")

    click.echo("\n🔐 Credentials Status (.env):")
    click.echo(f"  Graph API: {'Configured' if cfg.graph_api.is_configured() else 'Not set'}")
    click.echo(f"  Database: {'Configured' if cfg.database.url or cfg.database.password else 'Not set'}")
    click.echo("\n" + "=" * 80 + "\n")


def _on(flag: bool) -> str:
    return "enabled" if flag else "disabled"


@config.command("validate")
def config_validate():
    """Validate configuration."""
    errors = get_config().validate()

    if not errors:
        click.echo("✅ Configuration is valid")
        sys.exit(0)

    click.echo("❌ Configuration has errors:")
    for error in errors:
        click.echo(f"   • {error}")
    sys.exit(1)


if __name__ == "__main__":
    cli()
