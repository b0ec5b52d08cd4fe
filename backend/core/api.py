import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from .errors import LedgerError
from .outcomes import LedgerOutcome

logger = logging.getLogger(__name__)


def ledger_exception_handler(exc, context):
    """Render ledger errors as ``{"code", "detail", ...}`` with the kind's status code."""
    if isinstance(exc, LedgerError):
        if exc.retryable:
            logger.warning("Retryable ledger error in %s: %s", context.get("view"), exc)
        response = Response(exc.as_dict(), status=exc.status_code)
        if exc.retryable:
            response["Retry-After"] = "1"
        return response
    return exception_handler(exc, context)


def idempotency_key_from(request) -> str | None:
    key = request.headers.get("Idempotency-Key", "").strip()
    return key or None


def outcome_response(outcome: LedgerOutcome, data, *, key: str, status_code: int = 200) -> Response:
    return Response(
        {key: data, "warnings": outcome.warnings_payload(), "replayed": outcome.replayed},
        status=status_code,
    )
