import logging

import pytest

import mutate


@pytest.fixture()
def request_logger():
    return logging.getLogger("tests.reqlog")


@pytest.fixture()
def app(request_logger):
    app = mutate.create_app(
        logger=request_logger,
        LABEL_NAME="owner",
        LABEL_VALUE="testuser",
        TESTING=True,
    )
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def env_app():
    app = mutate.create_app(
        MUTATOR="env",
        ENV_NAME="NODEIP",
        ENV_FIELD_PATH="status.hostIP",
        TESTING=True,
    )
    yield app


@pytest.fixture()
def env_client(env_app):
    return env_app.test_client()
