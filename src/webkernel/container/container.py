"""
=============================================================================
DEPENDENCY INJECTION CONTAINER
=============================================================================

Turns an identifier into a ready-to-use object graph.

An identifier is either a class or a string. Strings are free-form service
names ("APP_ENV", "template-renderer") or dotted import paths naming a class
("myapp.controllers.PostController").

=============================================================================
AUTOWIRING
=============================================================================

The container reads constructor signatures and resolves each parameter from
its type annotation, recursively:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    RECURSIVE RESOLUTION                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   container.get(PostController)                                      │
    │        │                                                             │
    │        ▼                                                             │
    │   PostController.__init__(self, repo: PostRepository)               │
    │        │                            │                                │
    │        │                            ▼                                │
    │        │                   container.get(PostRepository)           │
    │        │                            │                                │
    │        │                            ▼                                │
    │        │        PostRepository.__init__(self, db: Connection)       │
    │        │                                      │                      │
    │        │                                      ▼                      │
    │        │                   container.get(Connection)  ← shared      │
    │        ▼                                                             │
    │   PostController(PostRepository(Connection))                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Rules for each parameter, in declaration order:

    1. Explicit argument on the definition     → used (leading params only)
    2. Annotated with a class                  → container.get(that class),
                                                 raising even if a default exists
    3. Scalar (str, int, list, ...) or missing → parameter default
    4. Nothing applies                         → UnsatisfiableArgumentError

Unbound classes are autowired on first use: get(SomeClass) registers an
implicit SomeClass → SomeClass binding. Abstract classes are never built
implicitly; they need an explicit binding to a concrete class.

=============================================================================
BINDINGS
=============================================================================

    container.add("APP_ENV", LiteralArgument("prod"))     # literal value
    container.add(SessionInterface, Session, shared=True)  # interface → class
    container.add_shared(Connection, make_connection)      # factory function
    container.add(Router).add_method_call("set_routes", [LiteralArgument(routes)])
    container.inflector(AbstractController).invoke_method("set_container", [Container])

Adding the same id twice raises DuplicateServiceError. Overwriting is an
explicit operation: container.replace(...).

=============================================================================
INTERVIEW QUESTIONS ABOUT DEPENDENCY INJECTION
=============================================================================

Q: "How do you detect circular dependencies?"
A: "Keep the ids currently being built on a stack. If an id shows up
   again before its constructor returns, the graph has a cycle. Report
   the whole path, not just the last edge, so the fix is obvious."

Q: "Why not just let the cycle overflow the stack?"
A: "RecursionError a thousand frames deep hides which bindings are
   involved. Detecting it at the second visit costs one list lookup."

Q: "Singleton vs transient?"
A: "Shared bindings cache the first instance; everything else is built
   fresh on each get(). Request-scoped state (controllers) should be
   transient, process-wide resources (connections) shared."

=============================================================================
"""

import functools
import importlib
import inspect
import logging
import threading
import types
import typing
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .exceptions import (
    DuplicateServiceError,
    ResolutionCycleError,
    ServiceNotFoundError,
    UnsatisfiableArgumentError,
    describe_service,
)


logger = logging.getLogger(__name__)


# A service id is a class or a string name / dotted import path
ServiceId = Union[str, type]

# Annotations the container refuses to autowire. These must come from an
# explicit argument or from the parameter's default value.
SCALAR_TYPES = frozenset({
    str, bytes, bytearray, int, float, complex, bool,
    list, dict, tuple, set, frozenset, type(None),
})

_UNION_TYPES: Tuple[Any, ...] = (Union,)
if hasattr(types, "UnionType"):  # PEP 604 unions: `Session | None`
    _UNION_TYPES += (types.UnionType,)


class LiteralArgument:
    """
    A value passed to a constructor exactly as given.

    Without the wrapper, a string argument that names a registered service
    is resolved through the container. Wrap it to pass the string itself:

        container.add(Guest).add_arguments([SessionInterface, LiteralArgument("/home")])
    """

    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"LiteralArgument({self.value!r})"


class Definition:
    """
    How to build one service.

    Returned by Container.add() so the binding can be refined fluently:

        container.add(Kernel).add_argument(Container).set_shared()
    """

    def __init__(
        self,
        service_id: ServiceId,
        concrete: Any,
        shared: bool = False,
        implicit: bool = False,
    ):
        self.id = service_id
        self.concrete = concrete
        self.shared = shared
        # Implicit definitions come from autowiring and may be superseded by add()
        self.implicit = implicit
        self.arguments: List[Any] = []
        self.method_calls: List[Tuple[str, Tuple[Any, ...]]] = []

    def add_argument(self, argument: Any) -> "Definition":
        """Append one explicit constructor argument."""
        self.arguments.append(argument)
        return self

    def add_arguments(self, arguments: Iterable[Any]) -> "Definition":
        """Append several explicit constructor arguments, in order."""
        self.arguments.extend(arguments)
        return self

    def add_method_call(self, name: str, arguments: Iterable[Any] = ()) -> "Definition":
        """Call `instance.<name>(*arguments)` after construction."""
        self.method_calls.append((name, tuple(arguments)))
        return self

    def set_shared(self, shared: bool = True) -> "Definition":
        self.shared = shared
        return self

    def __repr__(self) -> str:
        return (
            f"Definition({describe_service(self.id)}, shared={self.shared}, "
            f"implicit={self.implicit})"
        )


class Inflector:
    """Method calls applied to every built object of a given type."""

    def __init__(self, target: type):
        self.target = target
        self.method_calls: List[Tuple[str, Tuple[Any, ...]]] = []

    def invoke_method(self, name: str, arguments: Iterable[Any] = ()) -> "Inflector":
        self.method_calls.append((name, tuple(arguments)))
        return self

    def applies_to(self, instance: Any) -> bool:
        return isinstance(instance, self.target)


class Container:
    """
    Autowiring dependency injection container.

    =========================================================================
    LIFECYCLE
    =========================================================================

        BOOT (single thread)                 REQUESTS (any thread)
        ────────────────────                 ─────────────────────
        add / add_shared / replace           get / has
        extend / inflector

    Bindings are written at boot and read afterwards. Shared instances are
    created under a re-entrant lock so two threads never build the same
    singleton twice. The cycle-detection stack is per thread.

    =========================================================================
    """

    def __init__(self) -> None:
        self._definitions: Dict[Any, Definition] = {}
        self._shared_instances: Dict[Any, Any] = {}
        self._inflectors: List[Inflector] = []
        self._lock = threading.RLock()
        self._local = threading.local()

        # Services may depend on the container itself
        self._definitions[Container] = Definition(Container, LiteralArgument(self), shared=True)

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add(self, service_id: ServiceId, concrete: Any = None, shared: bool = False) -> Definition:
        """
        Register a binding.

        Args:
            service_id: Class or string identifier.
            concrete: Class, dotted class path, factory function, pre-built
                     instance, or LiteralArgument. Defaults to service_id,
                     which must then name a constructible class.
            shared: Cache the first resolved instance.

        Returns:
            The new Definition, for fluent refinement.

        Raises:
            ServiceNotFoundError: concrete omitted and service_id is not a
                                 constructible class.
            DuplicateServiceError: service_id already has an explicit binding.
        """
        with self._lock:
            existing = self._definitions.get(service_id)
            if existing is not None and not existing.implicit:
                raise DuplicateServiceError(service_id)
            return self._register(service_id, concrete, shared)

    def add_shared(self, service_id: ServiceId, concrete: Any = None) -> Definition:
        """Register a shared (singleton) binding."""
        return self.add(service_id, concrete, shared=True)

    def replace(self, service_id: ServiceId, concrete: Any = None, shared: bool = False) -> Definition:
        """Register a binding, overwriting any existing one and its cached instance."""
        with self._lock:
            if service_id in self._definitions:
                logger.debug("Replacing service %s", describe_service(service_id))
            return self._register(service_id, concrete, shared)

    def extend(self, service_id: ServiceId) -> Definition:
        """
        Get an existing definition to add arguments or method calls.

        Changes do not affect a shared instance that was already built.
        """
        definition = self._definitions.get(service_id)
        if definition is None:
            raise ServiceNotFoundError(service_id, "nothing to extend")
        return definition

    def inflector(self, target: type) -> Inflector:
        """
        Register method calls for every object of `target` type the
        container builds (controllers receiving the container, etc.).
        """
        inflector = Inflector(target)
        self._inflectors.append(inflector)
        return inflector

    def _register(
        self,
        service_id: ServiceId,
        concrete: Any,
        shared: bool,
        implicit: bool = False,
    ) -> Definition:
        if concrete is None:
            concrete = _locate_class(service_id)
            if concrete is None or not _is_constructible(concrete):
                raise ServiceNotFoundError(service_id)

        definition = Definition(service_id, concrete, shared=shared, implicit=implicit)
        self._definitions[service_id] = definition
        self._shared_instances.pop(service_id, None)

        logger.debug(
            "Registered service %s (shared=%s, implicit=%s)",
            describe_service(service_id),
            shared,
            implicit,
        )
        return definition

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def has(self, service_id: ServiceId) -> bool:
        """True if a binding exists, explicit or created by earlier autowiring."""
        return service_id in self._definitions

    def get(self, service_id: ServiceId) -> Any:
        """
        Resolve a service.

        Raises:
            ServiceNotFoundError: Unknown id that is not a constructible class.
            ResolutionCycleError: The constructor graph loops back on itself.
            UnsatisfiableArgumentError: A parameter cannot be autowired.
        """
        definition = self._definitions.get(service_id)

        if definition is None:
            concrete = _locate_class(service_id)
            if concrete is None:
                raise ServiceNotFoundError(service_id)
            if not _is_constructible(concrete):
                raise ServiceNotFoundError(service_id, "abstract classes need an explicit binding")
            with self._lock:
                definition = self._definitions.get(service_id) or self._register(
                    service_id, concrete, shared=False, implicit=True
                )

        return self._resolve(definition)

    def _resolve(self, definition: Definition) -> Any:
        if not definition.shared:
            return self._build_guarded(definition)

        # Double-checked under the lock so a singleton is only built once
        if definition.id in self._shared_instances:
            return self._shared_instances[definition.id]

        with self._lock:
            if definition.id not in self._shared_instances:
                self._shared_instances[definition.id] = self._build_guarded(definition)
            return self._shared_instances[definition.id]

    def _build_guarded(self, definition: Definition) -> Any:
        """Build with the in-flight stack that turns cycles into errors."""
        stack = self._resolution_stack()

        if definition.id in stack:
            cycle = stack[stack.index(definition.id):] + [definition.id]
            raise ResolutionCycleError(cycle)

        stack.append(definition.id)
        try:
            return self._build(definition)
        finally:
            stack.pop()

    def _resolution_stack(self) -> List[Any]:
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = self._local.stack = []
        return stack

    def _build(self, definition: Definition) -> Any:
        concrete = definition.concrete

        if isinstance(concrete, LiteralArgument):
            return concrete.value

        if isinstance(concrete, str):
            # Another binding's name → alias; otherwise a dotted class path
            if concrete != definition.id and concrete in self._definitions:
                return self.get(concrete)
            located = _locate_class(concrete)
            if located is None:
                raise ServiceNotFoundError(concrete, f"bound to {describe_service(definition.id)}")
            concrete = located

        if isinstance(concrete, type):
            if not _is_constructible(concrete):
                raise ServiceNotFoundError(concrete, "abstract classes cannot be instantiated")
            instance = self._instantiate(concrete, definition.arguments)
        elif _is_factory(concrete):
            args, kwargs = self._resolve_parameters(concrete, concrete, definition.arguments)
            instance = concrete(*args, **kwargs)
        else:
            # Pre-built instance, returned as registered
            return concrete

        for name, arguments in definition.method_calls:
            self._call_method(instance, name, arguments)

        for inflector in self._inflectors:
            if inflector.applies_to(instance):
                for name, arguments in inflector.method_calls:
                    self._call_method(instance, name, arguments)

        logger.debug("Built %s for %s", type(instance).__name__, describe_service(definition.id))
        return instance

    def _instantiate(self, cls: type, explicit: Sequence[Any]) -> Any:
        if cls.__init__ is object.__init__:
            return cls(*[self._resolve_argument(argument) for argument in explicit])

        args, kwargs = self._resolve_parameters(cls.__init__, cls, explicit, skip_first=True)
        return cls(*args, **kwargs)

    def _resolve_parameters(
        self,
        func: Callable[..., Any],
        owner: Any,
        explicit: Sequence[Any],
        skip_first: bool = False,
    ) -> Tuple[List[Any], Dict[str, Any]]:
        """
        Build positional and keyword arguments for `func`.

        Explicit arguments fill the leading positional parameters; the
        rest are autowired from their annotations.
        """
        try:
            signature = inspect.signature(func)
        except (TypeError, ValueError):
            # Builtins without introspectable signatures: explicit args only
            return [self._resolve_argument(argument) for argument in explicit], {}

        hints = _type_hints(func)
        parameters = list(signature.parameters.values())
        if skip_first:
            parameters = parameters[1:]

        args: List[Any] = []
        kwargs: Dict[str, Any] = {}
        remaining = list(explicit)

        for parameter in parameters:
            if parameter.kind is inspect.Parameter.VAR_KEYWORD:
                continue

            if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
                args.extend(self._resolve_argument(argument) for argument in remaining)
                remaining = []
                continue

            if remaining and parameter.kind is not inspect.Parameter.KEYWORD_ONLY:
                args.append(self._resolve_argument(remaining.pop(0)))
                continue

            value = self._autowire(owner, parameter, hints.get(parameter.name, parameter.annotation))
            if parameter.kind is inspect.Parameter.KEYWORD_ONLY:
                kwargs[parameter.name] = value
            else:
                args.append(value)

        return args, kwargs

    def _autowire(self, owner: Any, parameter: inspect.Parameter, annotation: Any) -> Any:
        has_default = parameter.default is not inspect.Parameter.empty
        target = _service_type(annotation)

        if target is None:
            if has_default:
                return parameter.default
            missing = annotation is inspect.Parameter.empty
            raise UnsatisfiableArgumentError(owner, parameter.name, None if missing else annotation)

        # A declared service type must resolve; a default never stands in for it
        try:
            return self.get(target)
        except ServiceNotFoundError as exc:
            raise UnsatisfiableArgumentError(owner, parameter.name, target) from exc

    def _resolve_argument(self, argument: Any) -> Any:
        """Explicit arguments: literals pass through, ids are resolved."""
        if isinstance(argument, LiteralArgument):
            return argument.value
        if isinstance(argument, type):
            return self.get(argument)
        if isinstance(argument, str) and argument in self._definitions:
            return self.get(argument)
        return argument

    def _call_method(self, instance: Any, name: str, arguments: Sequence[Any]) -> None:
        method = getattr(instance, name)
        method(*[self._resolve_argument(argument) for argument in arguments])


# =============================================================================
# HELPERS
# =============================================================================

def _locate_class(service_id: Any) -> Optional[type]:
    """
    Find the class an id names.

    Classes name themselves. Strings must be dotted import paths
    ("package.module.ClassName" or "package.module:ClassName").
    """
    if isinstance(service_id, type):
        return service_id
    if not isinstance(service_id, str):
        return None

    module_name, separator, attribute = service_id.replace(":", ".").rpartition(".")
    if not separator or not module_name or not attribute:
        return None

    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return None

    found = getattr(module, attribute, None)
    return found if isinstance(found, type) else None


def _is_constructible(cls: type) -> bool:
    return isinstance(cls, type) and not inspect.isabstract(cls)


def _is_factory(concrete: Any) -> bool:
    return (
        inspect.isfunction(concrete)
        or inspect.ismethod(concrete)
        or isinstance(concrete, functools.partial)
    )


def _type_hints(func: Callable[..., Any]) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(func)
    except (NameError, TypeError):
        # Unresolvable forward references: fall back to raw annotations
        return dict(getattr(func, "__annotations__", {}) or {})


def _service_type(annotation: Any) -> Optional[type]:
    """
    Map an annotation to the class to resolve, or None if it is not
    autowirable (missing, a string, a scalar, a generic container).

        Session            → Session
        Optional[Session]  → Session
        str, list[str]     → None
    """
    if annotation is inspect.Parameter.empty or isinstance(annotation, str):
        return None

    origin = typing.get_origin(annotation)
    if origin in _UNION_TYPES:
        members = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        return _service_type(members[0]) if len(members) == 1 else None
    if origin is not None:
        return None

    if not isinstance(annotation, type) or annotation in SCALAR_TYPES:
        return None
    return annotation
