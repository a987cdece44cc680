"""Append-only audit trail of processed Stripe events."""

from datetime import datetime, timezone

from guerreiro_concursos.repositories import stripe_logs_repo

OUTCOME_SUCCESS = 'success'
OUTCOME_ERROR = 'error'


def log_stripe_event(event, status, details=None, *, db, logger, time_module, received_at=None):
    processed_at = datetime.fromtimestamp(time_module.time(), tz=timezone.utc)
    payload = {
        'eventId': event.id,
        'eventType': event.type,
        'status': status,
        'details': details or {},
        'receivedAt': received_at or processed_at,
        'processedAt': processed_at,
    }
    try:
        stripe_logs_repo.add_entry(db, payload)
    except Exception as exc:
        logger.error(f"[Stripe] could not write audit entry for {event.type} ({event.id}): {exc}")
        return False
    logger.info(f"[Stripe] {event.type} ({event.id}) logged to logs_stripe with status {status}")
    return True
