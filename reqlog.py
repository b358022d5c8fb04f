import logging


class RequestLogger:
    """WSGI middleware that logs the status, method and path of every request.

    The logger is passed in rather than configured here, so that the caller
    decides where request records go.
    """

    def __init__(self, app, logger: logging.Logger | None = None):
        self.app = app
        self.logger = logger or logging.getLogger("reqlog")

    def __call__(self, environ, start_response):
        status = []

        def _start_response(status_line, headers, exc_info=None):
            status.append(int(status_line.split(" ", 1)[0]))
            return start_response(status_line, headers, exc_info)

        res = self.app(environ, _start_response)
        # start_response may be deferred until the body is iterated, but
        # Flask always calls it before returning.
        self.logger.info(
            "status=%d method=%s path=%s",
            status[-1] if status else 200,
            environ.get("REQUEST_METHOD"),
            environ.get("PATH_INFO"),
        )
        return res
