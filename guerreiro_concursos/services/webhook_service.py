"""Stripe webhook pipeline: resolve user, reconcile, reward, audit.

Each verified event produces exactly one audit entry. A user that cannot be
resolved is an ``error`` outcome that is still acknowledged to Stripe;
unexpected exceptions surface as ProcessingFailure so the endpoint answers
5xx and Stripe retries the delivery.
"""

import logging
import traceback
from dataclasses import dataclass, field

from guerreiro_concursos.errors import LookupFailure, ProcessingFailure, ValidationFailure
from guerreiro_concursos.logging_config import log_event
from guerreiro_concursos.services import audit_log_service, entitlement_service, rewards_service
from guerreiro_concursos.services.stripe_events import UnhandledEvent
from guerreiro_concursos.services.subscriber_resolver import resolve_user_id

UNHANDLED_NOTE = 'Evento não tratado, mas recebido com sucesso'


@dataclass
class WebhookOutcome:
    status: str
    details: dict = field(default_factory=dict)


def _audit(ctx, event, status, details, received_at):
    audit_log_service.log_stripe_event(
        event,
        status,
        details,
        db=ctx.db,
        logger=ctx.logger,
        time_module=ctx.time_module,
        received_at=received_at,
    )
    return WebhookOutcome(status=status, details=details)


def process_event(event, *, ctx, received_at=None):
    log_event(ctx.logger, logging.INFO, 'stripe_webhook_received', event_id=event.id, event_type=event.type)

    if isinstance(event, UnhandledEvent):
        ctx.logger.info(f"[Stripe] unhandled event type: {event.type} ({event.id})")
        return _audit(ctx, event, audit_log_service.OUTCOME_SUCCESS, {'note': UNHANDLED_NOTE}, received_at)

    try:
        note = entitlement_service.skip_reason(event)
        if note:
            ctx.logger.warning(f"[Stripe] {event.type} ({event.id}) skipped: {note}")
            return _audit(ctx, event, audit_log_service.OUTCOME_SUCCESS, {'note': note}, received_at)

        user_id, resolved_by = resolve_user_id(event, db=ctx.db, logger=ctx.logger)
        result = entitlement_service.reconcile(
            event,
            user_id,
            db=ctx.db,
            stripe_module=ctx.stripe,
            time_module=ctx.time_module,
            logger=ctx.logger,
        )
    except (LookupFailure, ValidationFailure) as exc:
        details = {'error': exc.message}
        details.update(exc.details)
        ctx.logger.error(f"[Stripe] {event.type} ({event.id}) not applied: {exc.message} {exc.details}")
        return _audit(ctx, event, audit_log_service.OUTCOME_ERROR, details, received_at)
    except Exception as exc:
        ctx.logger.exception(f"[Stripe] error processing webhook {event.type} ({event.id}): {exc}")
        if ctx.sentry_sdk is not None:
            ctx.sentry_sdk.capture_exception(exc)
        _audit(ctx, event, audit_log_service.OUTCOME_ERROR, {
            'error': str(exc),
            'stack': traceback.format_exc(),
        }, received_at)
        raise ProcessingFailure(str(exc), eventId=event.id, eventType=event.type) from exc

    details = dict(result.details)
    details['resolvedBy'] = resolved_by
    if result.activated_premium:
        details['rewards'] = rewards_service.grant_premium_rewards(
            ctx.db,
            user_id,
            logger=ctx.logger,
            now=entitlement_service.utc_now(ctx.time_module),
        )
    return _audit(ctx, event, audit_log_service.OUTCOME_SUCCESS, details, received_at)
