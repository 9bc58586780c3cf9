"""Unit tests for logging setup and exceptions."""

import logging

from graphql_container.exceptions import (
    ClientCapabilityError,
    ContainerDisposedError,
    GraphQLContainerError,
)
from graphql_container.utils import setup_logging


class TestSetupLogging:
    """Test setup_logging."""

    def test_sets_root_level(self):
        """Test the root logger level follows the setting."""
        logger = setup_logging("DEBUG", "plain")

        assert logging.getLogger().level == logging.DEBUG
        assert logger is not None

    def test_unknown_level_falls_back_to_info(self):
        """Test unknown level names fall back to INFO."""
        setup_logging("NOPE", "json")

        assert logging.getLogger().level == logging.INFO


class TestExceptions:
    """Test the exception hierarchy."""

    def test_hierarchy(self):
        """Test every error derives from the base error."""
        assert issubclass(ClientCapabilityError, GraphQLContainerError)
        assert issubclass(ContainerDisposedError, GraphQLContainerError)

    def test_attributes(self):
        """Test errors carry their context."""
        assert ClientCapabilityError("no query", capability="query").capability == "query"
        error = ContainerDisposedError("gone", container="profile")
        assert error.container == "profile"
        assert str(error) == "gone"
