class WebhookError(Exception):
    """Base class for errors that are reported to the caller.

    The message becomes the (plain text) response body and `status_code` the
    HTTP status.
    """

    status_code = 500


class RequestError(WebhookError):
    status_code = 400


class PolicyError(WebhookError):
    status_code = 403


class MutationRejected(PolicyError):
    """Raised by a mutator that refuses to patch a pod."""


class ApplicationError(WebhookError):
    """Raised when we fail to encode a response."""


class ConfigurationError(Exception):
    pass
