"""Exception hierarchy for graphql-container."""


class GraphQLContainerError(Exception):
    """Base exception for all graphql-container errors."""


class ClientCapabilityError(GraphQLContainerError):
    """The data-access client lacks a required operation."""

    def __init__(self, message: str, *, capability: str = "") -> None:
        self.capability = capability
        super().__init__(message)


class ContainerDisposedError(GraphQLContainerError):
    """A container was used after it was unmounted."""

    def __init__(self, message: str, *, container: str = "") -> None:
        self.container = container
        super().__init__(message)
