"""
Workflow Integration Gateway — calendar, email and task management.

Executed actions may hand their effect to an external system: meetings
and training sessions to a calendar, emails to a mail service, support
and escalation work to a task tracker. Each system sits behind a small
capability interface so the Action Executor never knows which vendor is
configured.

Settings are passed in explicitly (``IntegrationSettings.from_config``)
rather than read from globals. A disabled integration is reported as
``None`` by the gateway and the executor records a structured
"would-have-been-done" payload instead of calling out.

The bundled ``Placeholder*`` clients record the request locally and
return the identifiers a real system would; vendor clients implement the
same ABCs and are injected into ``WorkflowGateway``.

Usage:
    settings = IntegrationSettings.from_config(current_app.config)
    gateway = WorkflowGateway(settings)
    if gateway.calendar:
        gateway.calendar.schedule_meeting(action)
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field

from compliance_engine.models.action import Action
from compliance_engine.models.base import to_iso, utcnow

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Settings
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class CalendarIntegration:
    enabled: bool = False
    provider: str = "google"
    default_calendar: str = "primary"


@dataclass
class EmailIntegration:
    enabled: bool = False
    provider: str = "sendgrid"
    default_sender: str = "noreply@compliance.local"


@dataclass
class TaskManagementIntegration:
    enabled: bool = False
    provider: str = "jira"
    default_project: str = "COMPLIANCE"


@dataclass
class IntegrationSettings:
    calendar: CalendarIntegration = field(default_factory=CalendarIntegration)
    email: EmailIntegration = field(default_factory=EmailIntegration)
    task_management: TaskManagementIntegration = field(default_factory=TaskManagementIntegration)

    @classmethod
    def from_config(cls, config: Mapping) -> "IntegrationSettings":
        """Build from a Flask config mapping (missing keys → disabled defaults)."""
        return cls(
            calendar=CalendarIntegration(
                enabled=bool(config.get("CALENDAR_INTEGRATION_ENABLED", False)),
                provider=config.get("CALENDAR_INTEGRATION_PROVIDER", "google"),
                default_calendar=config.get("CALENDAR_DEFAULT_CALENDAR", "primary"),
            ),
            email=EmailIntegration(
                enabled=bool(config.get("EMAIL_INTEGRATION_ENABLED", False)),
                provider=config.get("EMAIL_INTEGRATION_PROVIDER", "sendgrid"),
                default_sender=config.get("EMAIL_DEFAULT_SENDER", "noreply@compliance.local"),
            ),
            task_management=TaskManagementIntegration(
                enabled=bool(config.get("TASK_INTEGRATION_ENABLED", False)),
                provider=config.get("TASK_INTEGRATION_PROVIDER", "jira"),
                default_project=config.get("TASK_DEFAULT_PROJECT", "COMPLIANCE"),
            ),
        )

    def to_dict(self) -> dict:
        return {
            "calendar": vars(self.calendar).copy(),
            "email": vars(self.email).copy(),
            "task_management": vars(self.task_management).copy(),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Capability interfaces
# ═════════════════════════════════════════════════════════════════════════════

class CalendarClient(ABC):
    @abstractmethod
    def schedule_meeting(self, action: Action) -> dict:
        """Create a calendar event for a meeting action."""

    @abstractmethod
    def schedule_training(self, action: Action) -> dict:
        """Create a calendar event for a training action."""


class EmailClient(ABC):
    @abstractmethod
    def send_email(self, action: Action) -> dict:
        """Send the email described by an email action."""


class TaskClient(ABC):
    @abstractmethod
    def create_task(self, action: Action, *, kind: str, priority: str, assignees: list[str]) -> dict:
        """Open a task for support or escalation work."""


# ═════════════════════════════════════════════════════════════════════════════
# Placeholder clients
# ═════════════════════════════════════════════════════════════════════════════

def _short_id() -> str:
    return uuid.uuid4().hex[:12]


class PlaceholderCalendarClient(CalendarClient):
    def __init__(self, settings: CalendarIntegration):
        self.settings = settings

    def schedule_meeting(self, action: Action) -> dict:
        event_id = _short_id()
        details = action.details
        payload = {
            "type": "meeting_scheduled",
            "provider": self.settings.provider,
            "calendar_id": self.settings.default_calendar,
            "meeting_id": f"meeting-{event_id}",
            "scheduled_for": to_iso(action.timeline.start_date),
            "attendees": list(action.attendees),
            "duration": details.duration,
        }
        if details.virtual:
            payload["meeting_url"] = f"https://meet.example.com/{event_id}"
        logger.info("Calendar (%s): meeting %s for action %s", self.settings.provider,
                    payload["meeting_id"], action.id, extra={"action_id": action.id})
        return payload

    def schedule_training(self, action: Action) -> dict:
        details = action.details
        payload = {
            "type": "training_scheduled",
            "provider": self.settings.provider,
            "calendar_id": self.settings.default_calendar,
            "event_id": f"training-{_short_id()}",
            "scheduled_for": to_iso(action.timeline.start_date),
            "attendees": list(details.target_audience),
            "duration": details.duration,
        }
        logger.info("Calendar (%s): training %s for action %s", self.settings.provider,
                    payload["event_id"], action.id, extra={"action_id": action.id})
        return payload


class PlaceholderEmailClient(EmailClient):
    def __init__(self, settings: EmailIntegration):
        self.settings = settings

    def send_email(self, action: Action) -> dict:
        details = action.details
        message_id = f"msg-{_short_id()}"
        payload = {
            "type": "email_sent",
            "provider": self.settings.provider,
            "message_id": message_id,
            "sender": self.settings.default_sender,
            "sent_at": to_iso(utcnow()),
            "recipients": list(details.recipients),
            "subject": details.subject,
            "tracking_id": message_id if details.tracking_enabled else None,
        }
        logger.info("Email (%s): %s for action %s", self.settings.provider, message_id, action.id,
                    extra={"action_id": action.id})
        return payload


class PlaceholderTaskClient(TaskClient):
    def __init__(self, settings: TaskManagementIntegration):
        self.settings = settings

    def create_task(self, action: Action, *, kind: str, priority: str, assignees: list[str]) -> dict:
        prefix = "escalation" if kind == "escalation" else "task"
        payload = {
            "type": f"{kind}_task_created",
            "provider": self.settings.provider,
            "task_id": f"{prefix}-{_short_id()}",
            "project_id": self.settings.default_project,
            "priority": priority,
            "assignees": list(assignees),
            "status": "assigned",
        }
        logger.info("Tasks (%s): %s for action %s", self.settings.provider, payload["task_id"],
                    action.id, extra={"action_id": action.id})
        return payload


# ═════════════════════════════════════════════════════════════════════════════
# Gateway
# ═════════════════════════════════════════════════════════════════════════════

class WorkflowGateway:
    """Hands out the enabled integration clients; disabled ones are None."""

    def __init__(
        self,
        settings: IntegrationSettings | None = None,
        *,
        calendar: CalendarClient | None = None,
        email: EmailClient | None = None,
        tasks: TaskClient | None = None,
    ) -> None:
        self.settings = settings or IntegrationSettings()
        self._calendar = calendar or PlaceholderCalendarClient(self.settings.calendar)
        self._email = email or PlaceholderEmailClient(self.settings.email)
        self._tasks = tasks or PlaceholderTaskClient(self.settings.task_management)

    @property
    def calendar(self) -> CalendarClient | None:
        return self._calendar if self.settings.calendar.enabled else None

    @property
    def email(self) -> EmailClient | None:
        return self._email if self.settings.email.enabled else None

    @property
    def tasks(self) -> TaskClient | None:
        return self._tasks if self.settings.task_management.enabled else None
