"""
Step registry - binds regex patterns to step handlers.

Registrations form a plain ordered list of (compiled pattern, keyword
constraint, handler). Matching walks the list linearly:

- Only registrations whose keyword is ANY or equal to the step's resolved
  keyword are candidates (And/But already resolved by the parser).
- Patterns match the whole step text; partial matches never count.
- Exactly one match returns a StepMatch; none raises UndefinedStepError;
  several raise AmbiguousStepError listing every match in registration order.

A registry is filled first and read afterwards. Registering after the first
match is unsupported and only logged.

Example usage:
    from gherkin_core.registry import StepRegistry

    registry = StepRegistry()

    @registry.given(r"I have the number (\\d+)")
    def have_number(match):
        context["number"] = int(match.captures[0])

    registry.when(r"I add (\\d+)", lambda m: context.update(...))

Declarative definitions:
    from gherkin_core.registry import StepDefinitions, given, then

    class ArithmeticSteps(StepDefinitions):
        def __init__(self):
            self.total = 0

        @given(r"I have the number (\\d+)")
        def have_number(self, match):
            self.total = int(match.captures[0])

    ArithmeticSteps().register(registry)
"""

import inspect
import logging
import os
import re
import types
from dataclasses import dataclass, field, replace
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    List,
    Mapping,
    Optional,
    Pattern,
    Tuple,
    Union,
)

from .errors import AmbiguousStepError, InvalidPatternError, UndefinedStepError
from .model import CONCRETE_KEYWORDS, DataTable, DocString, Keyword, Step

logger = logging.getLogger(__name__)

STEP_DEFINITIONS_ENV = "GHERKIN_STEP_DEFINITIONS"

# Keyword constraint matching any step keyword
ANY: Optional[Keyword] = None


@dataclass(frozen=True)
class StepMatch:
    """
    A step resolved against exactly one registration.

    Attributes:
        keyword: Resolved keyword of the step (Given/When/Then)
        text: Original step text
        captures: Regex groups in order; None for optional groups that did
            not participate
        named: Named groups
        data_table: Table attached to the step, if any
        doc_string: Doc string attached to the step, if any
        registration: The matching registration
    """

    keyword: Keyword
    text: str
    captures: Tuple[Optional[str], ...] = ()
    named: Dict[str, Optional[str]] = field(default_factory=dict, compare=False)
    data_table: Optional[DataTable] = None
    doc_string: Optional[DocString] = None
    registration: Optional["StepRegistration"] = field(default=None, compare=False)


StepHandler = Callable[[StepMatch], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class StepRegistration:
    pattern: str
    regex: Pattern[str]
    keyword: Optional[Keyword]
    handler: StepHandler
    index: int = 0
    definition: Optional["StepDefinition"] = field(default=None, compare=False, repr=False)

    def describe(self) -> str:
        prefix = self.keyword.value if self.keyword else "Step"
        return f"{prefix} /{self.pattern}/"


def _check_constraint(keyword: Optional[Keyword]) -> Optional[Keyword]:
    if keyword is not None and keyword not in CONCRETE_KEYWORDS:
        raise ValueError(f"Keyword constraint must be Given, When, Then or ANY, got {keyword}")
    return keyword


class StepRegistry:
    """
    Ordered pattern -> handler table.

    One instance per scenario run (or reset() between runs); instances must
    not be shared across concurrently running scenarios while registering.
    """

    def __init__(self) -> None:
        self._registrations: List[StepRegistration] = []
        self._matching_started = False

    # =========================================================================
    # Registration
    # =========================================================================

    def register(
        self,
        pattern: str,
        handler: StepHandler,
        keyword: Optional[Keyword] = ANY,
        definition: Optional["StepDefinition"] = None,
    ) -> StepRegistration:
        """
        Register a handler for steps whose full text matches ``pattern``.

        Args:
            pattern: Regular expression (unanchored; anchoring is implicit)
            handler: Callable taking a StepMatch; may be a coroutine function
            keyword: Given/When/Then constraint, or ANY
            definition: StepDefinition this registration was made from, if any

        Returns:
            The new StepRegistration

        Raises:
            InvalidPatternError: If the pattern does not compile
        """
        keyword = _check_constraint(keyword)
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise InvalidPatternError(pattern, str(e)) from e

        if self._matching_started:
            logger.warning(
                "Step %r registered after matching started; registration during a run "
                "is unsupported",
                pattern,
            )

        registration = StepRegistration(
            pattern=pattern,
            regex=regex,
            keyword=keyword,
            handler=handler,
            index=len(self._registrations),
            definition=definition,
        )
        self._registrations.append(registration)
        logger.debug("Registered %s", registration.describe())
        return registration

    def given(self, pattern: str, handler: Optional[StepHandler] = None) -> Any:
        """Register a Given step. Without a handler, returns a decorator."""
        return self._register_or_decorate(pattern, handler, Keyword.GIVEN)

    def when(self, pattern: str, handler: Optional[StepHandler] = None) -> Any:
        """Register a When step. Without a handler, returns a decorator."""
        return self._register_or_decorate(pattern, handler, Keyword.WHEN)

    def then(self, pattern: str, handler: Optional[StepHandler] = None) -> Any:
        """Register a Then step. Without a handler, returns a decorator."""
        return self._register_or_decorate(pattern, handler, Keyword.THEN)

    def step(self, pattern: str, handler: Optional[StepHandler] = None) -> Any:
        """Register a keyword-agnostic step. Without a handler, returns a decorator."""
        return self._register_or_decorate(pattern, handler, ANY)

    def _register_or_decorate(
        self, pattern: str, handler: Optional[StepHandler], keyword: Optional[Keyword]
    ) -> Any:
        if handler is not None:
            return self.register(pattern, handler, keyword)

        def decorator(func: StepHandler) -> StepHandler:
            self.register(pattern, func, keyword)
            return func

        return decorator

    def reset(self) -> None:
        """Remove every registration and return to the registration phase."""
        self._registrations = []
        self._matching_started = False

    @property
    def registrations(self) -> Tuple[StepRegistration, ...]:
        return tuple(self._registrations)

    def __len__(self) -> int:
        return len(self._registrations)

    # =========================================================================
    # Matching
    # =========================================================================

    def match(self, step: Step, source_file: Optional[str] = None) -> StepMatch:
        """
        Resolve a step to exactly one registration.

        Args:
            step: Step to match
            source_file: Used in error diagnostics only

        Returns:
            StepMatch for the single matching registration

        Raises:
            UndefinedStepError: No registration matches
            AmbiguousStepError: Two or more registrations match
        """
        self._matching_started = True
        hits: List[Tuple[StepRegistration, "re.Match[str]"]] = []

        for registration in self._registrations:
            if registration.keyword is not None and registration.keyword != step.resolved_keyword:
                continue
            found = registration.regex.fullmatch(step.text)
            if found is not None:
                hits.append((registration, found))

        if not hits:
            raise UndefinedStepError(step, source_file)
        if len(hits) > 1:
            raise AmbiguousStepError(
                step, [registration.pattern for registration, _ in hits], source_file
            )

        registration, found = hits[0]
        return StepMatch(
            keyword=step.resolved_keyword,
            text=step.text,
            captures=found.groups(),
            named=found.groupdict(),
            data_table=step.data_table,
            doc_string=step.doc_string,
            registration=registration,
        )


# =============================================================================
# Declarative step definitions
# =============================================================================


@dataclass(frozen=True)
class StepDefinition:
    """
    A step definition declared ahead of registration.

    Created by the given/when/then/step factories, either directly with a
    handler or as a decorator. Decorated methods of a StepDefinitions
    subclass are bound to the instance when read from it.
    """

    pattern: str
    handler: StepHandler
    keyword: Optional[Keyword] = ANY
    method: bool = False

    def __get__(self, instance: Any, owner: Any = None) -> "StepDefinition":
        if instance is None or not self.method or not isinstance(self.handler, types.FunctionType):
            return self
        return replace(self, handler=self.handler.__get__(instance, owner), method=False)

    def register(self, registry: StepRegistry) -> StepRegistration:
        return registry.register(self.pattern, self.handler, self.keyword, definition=self)

    @classmethod
    def given(cls, pattern: str, handler: Optional[StepHandler] = None) -> Any:
        return cls._build(pattern, handler, Keyword.GIVEN)

    @classmethod
    def when(cls, pattern: str, handler: Optional[StepHandler] = None) -> Any:
        return cls._build(pattern, handler, Keyword.WHEN)

    @classmethod
    def then(cls, pattern: str, handler: Optional[StepHandler] = None) -> Any:
        return cls._build(pattern, handler, Keyword.THEN)

    @classmethod
    def step(cls, pattern: str, handler: Optional[StepHandler] = None) -> Any:
        return cls._build(pattern, handler, ANY)

    @classmethod
    def _build(
        cls, pattern: str, handler: Optional[StepHandler], keyword: Optional[Keyword]
    ) -> Any:
        if handler is not None:
            return cls(pattern=pattern, handler=handler, keyword=keyword)

        def decorator(func: StepHandler) -> "StepDefinition":
            return cls(pattern=pattern, handler=func, keyword=keyword, method=True)

        return decorator


given = StepDefinition.given
when = StepDefinition.when
then = StepDefinition.then
step = StepDefinition.step


class StepDefinitions:
    """
    Base class grouping step definitions.

    register() collects every StepDefinition (or list/tuple of them) found
    on the class and its bases, base classes first, each class in
    declaration order.
    """

    def definitions(self) -> List[StepDefinition]:
        seen: Dict[str, None] = {}
        for klass in reversed(type(self).__mro__):
            for name in vars(klass):
                seen.setdefault(name, None)

        found: List[StepDefinition] = []
        for name in seen:
            if name.startswith("__"):
                continue
            value = getattr(self, name, None)
            if isinstance(value, StepDefinition):
                found.append(value)
            elif isinstance(value, (list, tuple)):
                found.extend(item for item in value if isinstance(item, StepDefinition))
        return found

    def register(self, registry: StepRegistry) -> List[StepRegistration]:
        return [definition.register(registry) for definition in self.definitions()]


def step_definition_filter_from_environment(
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[FrozenSet[str]]:
    """Class names from GHERKIN_STEP_DEFINITIONS, or None if unset/empty."""
    env = os.environ if environ is None else environ
    raw = env.get(STEP_DEFINITIONS_ENV, "")
    names = frozenset(name.strip() for name in raw.split(",") if name.strip())
    return names or None


def register_module(
    registry: StepRegistry,
    module: types.ModuleType,
    class_filter: Optional[FrozenSet[str]] = None,
) -> int:
    """
    Register every step definition a module provides.

    A module may expose any mix of:
    - a ``register(registry)`` function
    - module-level StepDefinition objects (each registered once per
      registry, so definitions imported from another step module are
      not repeated)
    - StepDefinitions subclasses (instantiated with no arguments)

    Args:
        registry: Registry to fill
        module: Imported step module
        class_filter: If given, only StepDefinitions subclasses with these
            names are used

    Returns:
        Number of registrations added
    """
    before = len(registry)

    hook = getattr(module, "register", None)
    if callable(hook) and not inspect.isclass(hook):
        hook(registry)

    registered = {id(r.definition) for r in registry.registrations if r.definition is not None}
    for name, value in vars(module).items():
        if isinstance(value, StepDefinition):
            if id(value) in registered:
                logger.debug("Skipping %s in %s (already registered)", name, module.__name__)
                continue
            value.register(registry)
            registered.add(id(value))
        elif (
            inspect.isclass(value)
            and issubclass(value, StepDefinitions)
            and value is not StepDefinitions
            and value.__module__ == module.__name__
        ):
            if class_filter is not None and name not in class_filter:
                logger.debug("Skipping step definitions %s (filtered)", name)
                continue
            value().register(registry)

    added = len(registry) - before
    logger.debug("Registered %d step(s) from %s", added, module.__name__)
    return added
