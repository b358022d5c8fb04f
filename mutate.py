import base64
import functools
import logging
import sys

import pydantic
from pydantic_core import PydanticSerializationError
from flask import Flask, Response, request, current_app
from werkzeug.exceptions import MethodNotAllowed

from models import (
    AdmissionReview,
    AdmissionReviewResponse,
    AdmissionResponse,
    Patch,
    PatchType,
    Pod,
    POD_RESOURCE,
)

import mutators
from exc import (
    ApplicationError,
    ConfigurationError,
    PolicyError,
    RequestError,
    WebhookError,
)
from reqlog import RequestLogger

LOG = logging.getLogger(__name__)

APPLICATION_JSON = "application/json"


class DEFAULTS:
    MUTATOR = "label"
    LABEL_NAME = "owner"
    LABEL_VALUE = "unassigned"
    ENV_NAME = "NODEIP"
    ENV_FIELD_PATH = "status.hostIP"
    ENDPOINT = None
    PROTECTED_NAMESPACES = ["kube-system", "kube-public"]
    BIND_ADDRESS = "0.0.0.0"
    PORT = 8443
    TLS_CERT = "/run/secrets/tls/tls.crt"
    TLS_KEY = "/run/secrets/tls/tls.key"
    LOG_LEVEL = "INFO"


def jsonresponse():
    """Transforms the response from a view function into a JSON object.

    We serialize with pydantic rather than flask.jsonify so that fields come
    out in declaration order and without whitespace.
    """

    def _outer(func):
        @functools.wraps(func)
        def _inner(*args, **kwargs):
            res = func(*args, **kwargs)
            try:
                body = res.model_dump_json(exclude_none=True)
            except PydanticSerializationError as err:
                LOG.error("failed to encode response: %s", err)
                raise ApplicationError("unable to encode response json")

            return Response(body, 200, content_type=APPLICATION_JSON)

        return _inner

    return _outer


def is_protected(namespace, protected=None):
    if protected is None:
        protected = DEFAULTS.PROTECTED_NAMESPACES
    return namespace in protected


def read_review() -> AdmissionReview:
    if request.headers.get("Content-Type") != APPLICATION_JSON:
        raise RequestError("invalid content-type")

    try:
        return AdmissionReview.model_validate_json(request.get_data())
    except pydantic.ValidationError as err:
        LOG.warning("failed to decode admission review: %s", err)
        raise RequestError("error reading request body")


def encode_patch(ops) -> str:
    try:
        patch = Patch(ops).model_dump_json(exclude_none=True)
    except (pydantic.ValidationError, PydanticSerializationError) as err:
        LOG.error("failed to encode patch: %s", err)
        raise ApplicationError("unable to marshal operation json")

    return base64.b64encode(patch.encode()).decode()


@jsonresponse()
def mutate_pod():
    review = read_review()

    if review.request is None:
        raise RequestError("nil admission request")

    req = review.request
    if is_protected(req.namespace, current_app.config["PROTECTED_NAMESPACES"]):
        raise PolicyError("will not modify resource in kube-* namespace")

    if req.resource != POD_RESOURCE:
        raise RequestError("resource not a v1.Pod")

    try:
        pod = Pod.from_object(req.object)
    except pydantic.ValidationError as err:
        LOG.warning("failed to decode pod: %s", err)
        raise RequestError("unable to unmarshal kubernetes v1.Pod")

    LOG.info(
        "mutating pod %s/%s (%s, uid %s)",
        req.namespace,
        req.name,
        req.operation,
        req.uid,
    )
    ops = current_app.mutator.mutate(pod)

    return AdmissionReviewResponse(
        response=AdmissionResponse(
            uid=req.uid,
            allowed=True,
            patchType=PatchType.JSONPatch,
            patch=encode_patch(ops),
        )
    )


def handle_webhookerror(err):
    if err.status_code >= 500:
        LOG.error("request failed: %s", err)
    else:
        LOG.warning("request rejected: %s", err)
    return str(err), err.status_code, {"content-type": "text/plain"}


def handle_methodnotallowed(err):
    methods = ", ".join(sorted(err.valid_methods or []))
    return (
        f"only {methods} permitted",
        405,
        {"content-type": "text/plain", "allow": methods},
    )


def health():
    return "OK", 200, {"content-type": "text/plain"}


def create_app(logger=None, **config) -> Flask:
    """Use an application factory [1] to create the Flask app.

    This makes it much easier to write tests for the application, since we can
    set up the test environment before instantiating the app. This is difficult
    to do if the app is created at `import` time.

    `logger` receives one record per request; see reqlog.RequestLogger.

    [1]: https://flask.palletsprojects.com/en/3.0.x/patterns/appfactories/
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    app.config.from_prefixed_env("PODPATCH")
    if config:
        app.config.update(config)

    # Comma-separated, as it arrives from the environment.
    protected = app.config["PROTECTED_NAMESPACES"]
    if isinstance(protected, str):
        app.config["PROTECTED_NAMESPACES"] = protected.split(",")

    app.mutator = mutators.from_config(app.config)
    endpoint = app.config["ENDPOINT"] or app.mutator.endpoint

    app.errorhandler(WebhookError)(handle_webhookerror)
    app.errorhandler(MethodNotAllowed)(handle_methodnotallowed)
    app.add_url_rule("/healthz", view_func=health)
    app.add_url_rule(
        endpoint,
        view_func=mutate_pod,
        methods=["POST"],
        provide_automatic_options=False,
    )
    app.wsgi_app = RequestLogger(app.wsgi_app, logger)

    return app


def main():
    try:
        app = create_app()
    except ConfigurationError as err:
        logging.basicConfig(level=logging.INFO)
        LOG.error("invalid configuration: %s", err)
        sys.exit(1)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(name)s:%(lineno)d %(message)s",
    )

    host, port = app.config["BIND_ADDRESS"], app.config["PORT"]
    LOG.info("binding TLS listener on %s:%s", host, port)
    app.run(
        host=host,
        port=port,
        ssl_context=(app.config["TLS_CERT"], app.config["TLS_KEY"]),
    )


if __name__ == "__main__":
    main()
