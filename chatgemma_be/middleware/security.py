"""
Security middleware for request size limiting.
"""
import logging

from django.conf import settings
from django.http import JsonResponse

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class RequestSizeLimitMiddleware:
    """
    Rejects write requests whose declared body is larger than
    ``settings.REQUEST_MAX_BYTES`` (10MB by default) with 413.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.max_size = getattr(settings, "REQUEST_MAX_BYTES", DEFAULT_MAX_BYTES)

    def __call__(self, request):
        if request.method in ['POST', 'PUT', 'PATCH']:
            content_length = request.META.get('CONTENT_LENGTH')

            if content_length:
                try:
                    content_length = int(content_length)
                except (ValueError, TypeError):
                    # unparseable header, let the view deal with the body
                    content_length = 0
                if content_length > self.max_size:
                    logger.warning(
                        "Request size limit exceeded: %s bytes from IP %s",
                        content_length, request.META.get('REMOTE_ADDR'),
                    )
                    return JsonResponse({
                        'error': 'Request too large',
                        'max_size_mb': self.max_size / (1024 * 1024),
                        'your_size_mb': round(content_length / (1024 * 1024), 2),
                    }, status=413)

        return self.get_response(request)
