"""
Shared fixtures: a facade wired to autospec'd MailchimpConnection mocks.

No test talks to the network; every connection the facade builds comes
from the `connection_factory` fixture below.
"""
from unittest.mock import create_autospec

import pytest

from chimplet.connection import MailchimpConnection
from chimplet.facade import ListServiceFacade


CURRENT_LIST = {"id": "abc123", "name": "Newsletter", "stats": {"member_count": 42}}


class ConnectionFactory:
    """Builds a fresh autospec'd connection per call and remembers each one."""

    def __init__(self):
        self.created = []

    def __call__(self, api_key, options=None):
        connection = create_autospec(MailchimpConnection, instance=True)
        connection.api_key = api_key
        connection.options = options
        self.created.append(connection)
        return connection


@pytest.fixture
def connection_factory():
    return ConnectionFactory()


@pytest.fixture
def facade(connection_factory):
    return ListServiceFacade("0123456789abcdef-us1", {"timeout": 5}, connection_factory=connection_factory)


@pytest.fixture
def connection(facade):
    return facade.connection


@pytest.fixture
def list_facade(facade):
    """Facade with CURRENT_LIST selected as the list context."""
    facade.set_current_list(dict(CURRENT_LIST))
    return facade
