import logging

from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

VALIDATION_ERROR = 'VALIDATION_ERROR'
ALREADY_REGISTERED = 'ALREADY_REGISTERED'
TIME_UNAVAILABLE = 'TIME_UNAVAILABLE'
NO_CAPACITY = 'NO_CAPACITY'
DIRECTORY_UNREACHABLE = 'DIRECTORY_UNREACHABLE'
NOT_FOUND = 'NOT_FOUND'
INTERNAL = 'INTERNAL'


class RegistrationError(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Registration failed.'
    default_code = INTERNAL


class AlreadyRegistered(RegistrationError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'You have already registered for a slot. Only one registration per user is allowed.'
    default_code = ALREADY_REGISTERED


class TimeUnavailable(RegistrationError):
    default_detail = 'Selected time slot is not available.'
    default_code = TIME_UNAVAILABLE


class NoCapacity(RegistrationError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'No available slots for this time. All slots are full.'
    default_code = NO_CAPACITY


class DirectoryUnavailable(RegistrationError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Cannot reach user service. Please try again.'
    default_code = DIRECTORY_UNREACHABLE


class NotFound(RegistrationError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = NOT_FOUND


def _error_body(code, message, errors=None):
    body = {'success': False, 'code': code, 'message': message}
    if errors is not None:
        body['errors'] = errors
    return body


def registration_exception_handler(exc, context):
    """Render every API failure as ``{success, code, message[, errors]}``.

    Unexpected exceptions are logged with the failing view and surfaced as a
    generic internal error.
    """
    if isinstance(exc, RegistrationError):
        return Response(_error_body(exc.default_code, str(exc.detail)), status=exc.status_code)

    if isinstance(exc, exceptions.ValidationError):
        return Response(
            _error_body(VALIDATION_ERROR, 'The given data was invalid.', exc.detail),
            status=status.HTTP_400_BAD_REQUEST,
        )

    # an unreadable body is malformed input like any other
    if isinstance(exc, (exceptions.ParseError, exceptions.UnsupportedMediaType)):
        return Response(_error_body(VALIDATION_ERROR, str(exc.detail)), status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, (Http404, exceptions.NotFound)):
        message = str(exc) or 'Not found.'
        return Response(_error_body(NOT_FOUND, message), status=status.HTTP_404_NOT_FOUND)

    response = exception_handler(exc, context)
    if response is not None:
        detail = response.data.get('detail', '') if isinstance(response.data, dict) else response.data
        code = getattr(detail, 'code', None) or 'error'
        response.data = _error_body(str(code).upper(), str(detail))
        return response

    view = context.get('view')
    request = context.get('request')
    logger.exception(
        "Unhandled error in %s (%s %s)",
        view.get_view_name() if view is not None else 'unknown view',
        getattr(request, 'method', '-'),
        getattr(request, 'path', '-'),
    )
    return Response(
        _error_body(INTERNAL, 'Internal server error. Please try again later.'),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
