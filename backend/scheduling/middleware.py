import logging

logger = logging.getLogger("scheduling.requests")


class RequestLoggingMiddleware:
    """Log one line per incoming request: method and full path."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        logger.info("%s %s", request.method, request.get_full_path())
        return self.get_response(request)
