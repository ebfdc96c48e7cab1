# core/responses.py
import logging
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


def success_response(message='', data=None, status_code=status.HTTP_200_OK, **extra):
    body = {'success': True, 'message': message}
    if data is not None:
        body['data'] = data
    body.update(extra)
    return Response(body, status=status_code)


def error_response(message, status_code=status.HTTP_400_BAD_REQUEST, **extra):
    body = {'success': False, 'message': message}
    body.update(extra)
    return Response(body, status=status_code)


def server_error_response(error, message):
    """Log an unexpected failure; only DEBUG responses carry the exception text"""
    logger.error(f"{message}: {str(error)}", exc_info=True)
    return Response({
        'success': False,
        'message': message,
        'error': str(error) if settings.DEBUG else 'An unexpected error occurred. Please try again later.'
    }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
