"""
=============================================================================
CONTAINER ERRORS
=============================================================================

Every failure the dependency container can raise derives from
ContainerError, so bootstrap code can catch the whole family at once:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     CONTAINER ERROR HIERARCHY                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ContainerError                                                     │
    │   ├── ServiceNotFoundError        unknown / non-constructible id    │
    │   ├── DuplicateServiceError       id registered twice               │
    │   ├── ResolutionCycleError        A needs B needs ... needs A       │
    │   └── UnsatisfiableArgumentError  scalar or unbound parameter       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

None of these are the client's fault. When one escapes to the Kernel in
production mode it becomes a plain 500 response.

=============================================================================
"""

import inspect
from typing import Any, Sequence


def describe_service(service_id: Any) -> str:
    """Human-readable name for a service id (class, factory or string)."""
    if isinstance(service_id, type) or inspect.isfunction(service_id):
        return f"{service_id.__module__}.{service_id.__qualname__}"
    return repr(service_id)


class ContainerError(Exception):
    """Base class for all dependency container errors."""


class ServiceNotFoundError(ContainerError):
    """
    The id is not bound and does not name a constructible class.

    Raised by Container.add() when no concrete is given and the id cannot
    be built, and by Container.get() for unknown ids.
    """

    def __init__(self, service_id: Any, reason: str = ""):
        self.service_id = service_id
        message = f"Service {describe_service(service_id)} could not be found"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DuplicateServiceError(ContainerError):
    """An explicit binding already exists; use Container.replace() instead."""

    def __init__(self, service_id: Any):
        self.service_id = service_id
        super().__init__(
            f"Service {describe_service(service_id)} is already registered. "
            f"Use replace() to overwrite it."
        )


class ResolutionCycleError(ContainerError):
    """
    Constructor dependencies form a cycle.

    The `path` attribute holds the ids in resolution order, with the
    repeated id at both ends:

        [A, B, C, A]  →  "A -> B -> C -> A"
    """

    def __init__(self, path: Sequence[Any]):
        self.path = list(path)
        chain = " -> ".join(describe_service(item) for item in self.path)
        super().__init__(f"Circular dependency detected: {chain}")


class UnsatisfiableArgumentError(ContainerError):
    """A constructor parameter cannot be autowired."""

    def __init__(self, owner: Any, parameter: str, annotation: Any = None):
        self.owner = owner
        self.parameter = parameter
        self.annotation = annotation

        if annotation is None:
            detail = "it has no type annotation"
        else:
            detail = f"its type {_annotation_name(annotation)} cannot be autowired"

        super().__init__(
            f"Cannot resolve parameter '{parameter}' of {describe_service(owner)}: "
            f"{detail}. Bind an explicit argument or give it a default."
        )


def _annotation_name(annotation: Any) -> str:
    if isinstance(annotation, type):
        return annotation.__qualname__
    return str(annotation)
