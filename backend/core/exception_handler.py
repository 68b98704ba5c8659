import logging
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status

from backend.pricing.exceptions import PricingError

logger = logging.getLogger(__name__)


def custom_exception_handler(exc, context):
    """
    Project-wide DRF exception handler.
    Logs every API error with its view and turns pricing errors into JSON responses.
    """
    view = context.get('view', None)
    view_name = view.__class__.__name__ if view else 'UnknownView'

    if isinstance(exc, PricingError):
        logger.warning(f"[{view_name}] Pricing error: {exc}")
        payload = {'error': exc.message}
        field = getattr(exc, 'field', None)
        if field:
            payload['field'] = field
        return Response(payload, status=exc.status_code)

    # Let DRF handle built-in exceptions (validation, auth, 404, ...)
    response = exception_handler(exc, context)
    if response is not None:
        logger.info(f"[{view_name}] {exc.__class__.__name__}: {exc}")
        return response

    logger.exception(f"[{view_name}] Unhandled exception", exc_info=exc)
    return Response(
        {'error': 'An unexpected error occurred. Please try again later.'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
