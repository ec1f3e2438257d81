"""
Service wiring.

Builds every component once, handing collaborators in through constructors,
and assembles the scheduler's periodic tasks.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .calendar.providers import CalendarRegistry, GoogleCalendarProvider, GraphCalendarProvider
from .calendar.sync import CalendarImporter
from .cleanup.calendar_cleanup import CalendarCleanup
from .core.config import AppConfig, ConfigManager
from .core.database import DatabaseManager
from .graph.client import GraphAPIClient
from .graph.mail import DisabledMailSender, EmailSender, MailSender
from .jobs.email_queue import EmailJobQueue
from .meetings.lifecycle import MeetingLifecycle
from .preferences.user_settings import SettingsManager
from .qualification.engine import QualificationEngine
from .qualification.rules import RuleManager
from .reporting.grooming_efficiency import GroomingEfficiencyAggregator
from .reporting.no_show_analytics import NoShowAnalytics
from .scheduler.supervisor import PeriodicTask, SchedulerSupervisor
from .scheduling.auto_reschedule import AutoRescheduleCoordinator
from .scheduling.slot_finder import SlotFinder
from .tracking.invite_tracking import InviteTracker


logger = logging.getLogger(__name__)


@dataclass
class Services:
    db: DatabaseManager
    settings: SettingsManager
    rules: RuleManager
    calendars: CalendarRegistry
    engine: QualificationEngine
    lifecycle: MeetingLifecycle
    queue: EmailJobQueue
    coordinator: AutoRescheduleCoordinator
    invites: InviteTracker
    grooming: GroomingEfficiencyAggregator
    analytics: NoShowAnalytics
    cleanup: CalendarCleanup
    importer: CalendarImporter


def build_services(
    config: ConfigManager,
    db: Optional[DatabaseManager] = None,
    calendars: Optional[CalendarRegistry] = None,
    sender: Optional[MailSender] = None,
) -> Services:
    """
    Wire all components.

    Args:
        config: Loaded configuration
        db: DatabaseManager (created from config if omitted)
        calendars: Calendar registry (Graph + Google from config if omitted)
        sender: Mail sender (Graph sendMail from config if omitted)
    """
    db = db or DatabaseManager(config.database.connection_string)

    if calendars is None or sender is None:
        graph_client = GraphAPIClient(config.graph_api) if config.graph_api.is_configured() else None
        if graph_client is None:
            logger.warning("Graph API not configured; Outlook calendars and outbound mail are disabled")

        if calendars is None:
            providers = {"google_calendar": GoogleCalendarProvider(config.google_calendar)}
            if graph_client is not None:
                providers["outlook"] = GraphCalendarProvider(graph_client)
            calendars = CalendarRegistry(db, providers)

        if sender is None:
            sender = EmailSender(graph_client) if graph_client is not None else DisabledMailSender()

    settings = SettingsManager(db)
    rules = RuleManager(db)
    engine = QualificationEngine(db, calendars=calendars, rules=rules, settings=settings)
    queue = EmailJobQueue(db, sender, settings=settings, max_retries=config.app.email_max_retries)

    return Services(
        db=db,
        settings=settings,
        rules=rules,
        calendars=calendars,
        engine=engine,
        lifecycle=MeetingLifecycle(db),
        queue=queue,
        coordinator=AutoRescheduleCoordinator(db, queue, slot_finder=SlotFinder(db), settings=settings),
        invites=InviteTracker(
            db,
            calendars,
            lookback_days=config.app.invite_lookback_days,
            at_risk_hours=config.app.invite_at_risk_hours,
        ),
        grooming=GroomingEfficiencyAggregator(db),
        analytics=NoShowAnalytics(db),
        cleanup=CalendarCleanup(db, calendars, queue, settings=settings),
        importer=CalendarImporter(db, calendars, engine),
    )


def build_supervisor(services: Services, app: AppConfig) -> SchedulerSupervisor:
    """Periodic tasks for every enabled poller."""
    supervisor = SchedulerSupervisor()

    if app.email_queue_enabled:
        supervisor.add_task(PeriodicTask("email_queue", app.email_queue_interval_seconds, services.queue.dispatch_due))
    if app.auto_reschedule_enabled:
        supervisor.add_task(
            PeriodicTask(
                "auto_reschedule", app.auto_reschedule_interval_minutes * 60, services.coordinator.process_due
            )
        )
    if app.invite_tracking_enabled:
        supervisor.add_task(
            PeriodicTask("invite_tracking", app.invite_tracking_interval_minutes * 60, services.invites.run_tracking)
        )
    if app.grooming_metrics_enabled:
        supervisor.add_task(
            PeriodicTask(
                "grooming_metrics", app.grooming_metrics_interval_minutes * 60, services.grooming.run_current_week
            )
        )
    if app.calendar_cleanup_enabled:
        supervisor.add_task(
            PeriodicTask("calendar_cleanup", app.calendar_cleanup_interval_minutes * 60, services.cleanup.run_cleanup)
        )

    return supervisor
