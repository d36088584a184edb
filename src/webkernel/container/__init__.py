"""
Dependency injection container.

    from webkernel.container import Container, LiteralArgument

    container = Container()
    container.add_shared(SessionInterface, Session)
    kernel = container.get(Kernel)
"""

from .container import Container, Definition, Inflector, LiteralArgument, ServiceId
from .exceptions import (
    ContainerError,
    DuplicateServiceError,
    ResolutionCycleError,
    ServiceNotFoundError,
    UnsatisfiableArgumentError,
)

__all__ = [
    "Container",
    "Definition",
    "Inflector",
    "LiteralArgument",
    "ServiceId",

    # Errors
    "ContainerError",
    "DuplicateServiceError",
    "ResolutionCycleError",
    "ServiceNotFoundError",
    "UnsatisfiableArgumentError",
]
