"""Action blocks: parsed variants and the dispatcher that executes them.

Each variant holds unrendered templates; placeholders are resolved against
the running context at dispatch time. In SIMULATE mode the dispatcher
renders exactly what LIVE would and reports it without touching any
collaborator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, assert_never
from uuid import UUID

import httpx

from src.automata.core.exceptions import (
    AutomationError,
    FlowValidationError,
    MissingRecipient,
    ProviderError,
)
from src.automata.core.logging import get_logger
from src.automata.engine.templates import interpolate
from src.automata.engine.values import is_truthy, to_js_string
from src.automata.integrations.email import EmailSender
from src.automata.integrations.sms import SmsSender
from src.automata.integrations.stores import JobStore, NotificationStore

logger = get_logger(__name__)

EMAIL_PREVIEW_CHARS = 200
SMS_PREVIEW_CHARS = 160


class ExecutionMode(str, Enum):
    LIVE = "live"
    SIMULATE = "simulate"


@dataclass(frozen=True)
class SendEmailAction:
    kind: ClassVar[str] = "send_email"

    to: str
    subject: str
    html: str


@dataclass(frozen=True)
class SendSmsAction:
    kind: ClassVar[str] = "send_sms"

    phone: str
    body: str


@dataclass(frozen=True)
class SendNotificationAction:
    kind: ClassVar[str] = "send_notification"

    user_id: str
    title: str
    body: str


@dataclass(frozen=True)
class UpdateJobStatusAction:
    kind: ClassVar[str] = "update_job_status"

    job_id: str
    status: str


@dataclass(frozen=True)
class CreateJobAction:
    kind: ClassVar[str] = "create_job"

    title: str
    initial_status: str
    priority: str


@dataclass(frozen=True)
class WebhookAction:
    kind: ClassVar[str] = "webhook"

    url: str


Action = (
    SendEmailAction
    | SendSmsAction
    | SendNotificationAction
    | UpdateJobStatusAction
    | CreateJobAction
    | WebhookAction
)

ACTION_KINDS = frozenset(
    {
        "send_email",
        "send_sms",
        "send_notification",
        "create_notification",
        "update_job_status",
        "create_job",
        "webhook",
    }
)


def _setting(config: dict[str, Any], *keys: str, default: str = "") -> str:
    """First truthy value among keys, rendered as a string, else default."""
    for key in keys:
        value = config.get(key)
        if is_truthy(value):
            return to_js_string(value)
    return default


def parse_action(kind: str, config: dict[str, Any]) -> Action:
    """Build an action variant from a block's config.

    Raises:
        FlowValidationError: unknown kind, or a required key is missing.
    """
    match kind:
        case "send_email":
            return SendEmailAction(
                to=_setting(config, "to", default="{{trigger.client_email}}"),
                subject=_setting(config, "subject", default="Notification"),
                html=_setting(config, "html", "body", "template"),
            )
        case "send_sms":
            return SendSmsAction(
                phone=_setting(config, "phone", "to", default="{{trigger.client_phone}}"),
                body=_setting(config, "body", "template"),
            )
        case "send_notification" | "create_notification":
            return SendNotificationAction(
                user_id=_setting(config, "user_id", default="{{trigger.user_id}}"),
                title=_setting(config, "title", default="Automation notification"),
                body=_setting(config, "body"),
            )
        case "update_job_status":
            status = _setting(config, "status")
            if not status:
                raise FlowValidationError("update_job_status requires a status")
            return UpdateJobStatusAction(
                job_id=_setting(config, "job_id", default="{{trigger.entity_id}}"),
                status=status,
            )
        case "create_job":
            return CreateJobAction(
                title=_setting(config, "title", default="Auto-created job"),
                initial_status=_setting(config, "initial_status", default="todo"),
                priority=_setting(config, "priority", default="medium"),
            )
        case "webhook":
            url = _setting(config, "url")
            if not url:
                raise FlowValidationError("webhook requires a url")
            return WebhookAction(url=url)
        case _:
            raise FlowValidationError(f"Unknown action type: {kind!r}")


@dataclass(frozen=True)
class ActionResult:
    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    simulated: bool = False

    @classmethod
    def ok(cls, output: dict[str, Any], simulated: bool = False) -> "ActionResult":
        return cls(success=True, output=output, simulated=simulated)

    @classmethod
    def failed(
        cls, error: AutomationError | str, output: dict[str, Any] | None = None
    ) -> "ActionResult":
        message = error.describe() if isinstance(error, AutomationError) else error
        return cls(success=False, output=output, error=message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        if self.simulated:
            data["simulated"] = True
        return data


class ActionDispatcher:
    """Executes action variants through injected collaborators.

    `dispatch` never raises: every failure comes back as an ActionResult with
    success=False and an "<ErrorName>: <message>" error string.
    """

    def __init__(
        self,
        *,
        email: EmailSender,
        sms: SmsSender,
        notifications: NotificationStore,
        jobs: JobStore,
        http_client: httpx.AsyncClient,
        timeout_seconds: float,
    ):
        self._email = email
        self._sms = sms
        self._notifications = notifications
        self._jobs = jobs
        self._http = http_client
        self._timeout = timeout_seconds

    async def dispatch(
        self,
        action: Action,
        context: dict[str, Any],
        tenant_id: UUID,
        mode: ExecutionMode,
    ) -> ActionResult:
        simulate = mode is ExecutionMode.SIMULATE
        try:
            match action:
                case SendEmailAction():
                    return await self._send_email(action, context, simulate)
                case SendSmsAction():
                    return await self._send_sms(action, context, simulate)
                case SendNotificationAction():
                    return await self._notify(action, context, tenant_id, simulate)
                case UpdateJobStatusAction():
                    return await self._update_job(action, context, tenant_id, simulate)
                case CreateJobAction():
                    return await self._create_job(action, context, tenant_id, simulate)
                case WebhookAction():
                    return await self._post_webhook(action, context, tenant_id, simulate)
                case _:
                    assert_never(action)
        except AutomationError as e:
            logger.warning("Action failed", action=action.kind, error=e.describe())
            return ActionResult.failed(e)
        except Exception as e:
            logger.exception("Action raised unexpectedly", action=action.kind)
            return ActionResult.failed(f"{type(e).__name__}: {e}")

    async def _send_email(
        self, action: SendEmailAction, context: dict[str, Any], simulate: bool
    ) -> ActionResult:
        to = interpolate(action.to, context)
        subject = interpolate(action.subject, context)
        html = interpolate(action.html, context)
        if not to:
            raise MissingRecipient("No recipient email")

        if simulate:
            return ActionResult.ok(
                {
                    "would_send_to": to,
                    "subject": subject,
                    "body_preview": html[:EMAIL_PREVIEW_CHARS],
                },
                simulated=True,
            )

        await self._email.send(to=to, subject=subject, html=html)
        return ActionResult.ok({"emailed": to})

    async def _send_sms(
        self, action: SendSmsAction, context: dict[str, Any], simulate: bool
    ) -> ActionResult:
        phone = interpolate(action.phone, context)
        body = interpolate(action.body, context)
        if not phone:
            raise MissingRecipient("No phone number")

        if simulate:
            return ActionResult.ok(
                {"would_sms_to": phone, "body_preview": body[:SMS_PREVIEW_CHARS]},
                simulated=True,
            )

        await self._sms.send(to=phone, body=body)
        return ActionResult.ok({"texted": phone})

    async def _notify(
        self,
        action: SendNotificationAction,
        context: dict[str, Any],
        tenant_id: UUID,
        simulate: bool,
    ) -> ActionResult:
        user_id = interpolate(action.user_id, context)
        title = interpolate(action.title, context)
        body = interpolate(action.body, context)
        if not user_id:
            raise MissingRecipient("No user_id for notification")

        if simulate:
            return ActionResult.ok({"would_notify": user_id, "title": title}, simulated=True)

        await self._notifications.create(
            tenant_id=tenant_id, user_id=user_id, title=title, body=body
        )
        return ActionResult.ok({"notified": user_id})

    async def _update_job(
        self,
        action: UpdateJobStatusAction,
        context: dict[str, Any],
        tenant_id: UUID,
        simulate: bool,
    ) -> ActionResult:
        job_id = interpolate(action.job_id, context)
        if not job_id:
            raise MissingRecipient("No job_id to update")

        if simulate:
            return ActionResult.ok(
                {"would_update": job_id, "to_status": action.status}, simulated=True
            )

        await self._jobs.update_status(tenant_id=tenant_id, job_id=job_id, status=action.status)
        return ActionResult.ok({"job_id": job_id, "new_status": action.status})

    async def _create_job(
        self,
        action: CreateJobAction,
        context: dict[str, Any],
        tenant_id: UUID,
        simulate: bool,
    ) -> ActionResult:
        title = interpolate(action.title, context)

        if simulate:
            return ActionResult.ok({"would_create_job": title}, simulated=True)

        job_id = await self._jobs.create(
            tenant_id=tenant_id,
            title=title,
            status=action.initial_status,
            priority=action.priority,
        )
        return ActionResult.ok({"job_id": job_id})

    async def _post_webhook(
        self,
        action: WebhookAction,
        context: dict[str, Any],
        tenant_id: UUID,
        simulate: bool,
    ) -> ActionResult:
        if simulate:
            return ActionResult.ok({"would_post_to": action.url}, simulated=True)

        try:
            response = await self._http.post(
                action.url,
                json={"organization_id": str(tenant_id), "context": context},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Webhook to {action.url} timed out after {self._timeout:g}s"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Webhook to {action.url} failed: {e}") from e

        output = {"status": response.status_code}
        if not response.is_success:
            return ActionResult.failed(
                ProviderError(f"Webhook returned {response.status_code}"), output=output
            )
        return ActionResult.ok(output)
