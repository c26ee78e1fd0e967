"""Automatically run by pytest to set up test infrastructure."""

import fakeredis
import pytest
import requests_mock

import require_matching_label
import require_matching_label.utils

from . import settings as test_settings
from .fake_github import FakeGitHub


@pytest.fixture
def requests_mocker():
    """Make requests_mock available as a fixture."""
    mocker = requests_mock.Mocker(real_http=False, case_sensitive=True)
    mocker.start()
    try:
        yield mocker
    finally:
        mocker.stop()


@pytest.fixture(autouse=True)
def settings_for_tests(mocker):
    for name, value in vars(test_settings).items():
        if name.isupper():
            mocker.patch(f"require_matching_label.settings.{name}", value)


@pytest.fixture
def fake_github(requests_mocker):
    the_fake_github = FakeGitHub(login="label-bot")
    the_fake_github.install_mocks(requests_mocker)
    return the_fake_github


@pytest.fixture(autouse=True)
def grace_sleep(mocker):
    """Don't really wait for grace periods. The mock records what we would have waited."""
    return mocker.patch("require_matching_label.tasks.github.grace_sleep")


@pytest.fixture(autouse=True)
def fake_redis(mocker):
    """
    Item locks go to an in-memory Redis.  Every call gets its own client on
    the same server, the way separate worker processes would.
    """
    server = fakeredis.FakeServer()
    mocker.patch(
        "require_matching_label.tasks.label_tracking.redis_store",
        side_effect=lambda: fakeredis.FakeRedis(server=server),
    )
    return server


@pytest.fixture(autouse=True)
def configure_flask_app():
    """
    Needed to make the app understand it's running under HTTPS, and have Flask
    initialized properly.
    """
    app = require_matching_label.create_app(config="testing")
    with app.test_request_context('/', base_url="https://require-matching-label.herokuapp.com"):
        yield


@pytest.fixture(autouse=True)
def reset_all_memoized_functions():
    """Clears the values cached by @memoize before each test. Applied automatically."""
    require_matching_label.utils.clear_memoized_values()
