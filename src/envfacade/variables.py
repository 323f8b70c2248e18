"""Environment variable name/value rules and %NAME% expansion."""

from collections.abc import Callable

from envfacade.errors import InvalidArgumentError
from envfacade.models import EnvironmentScope

MAX_VARIABLE_LENGTH = 32767
MAX_PERSISTED_NAME_LENGTH = 255


def coerce_scope(scope: EnvironmentScope | str) -> EnvironmentScope:
    """Return scope as an EnvironmentScope, accepting its string value too."""
    if isinstance(scope, EnvironmentScope):
        return scope
    try:
        return EnvironmentScope(scope)
    except ValueError:
        raise InvalidArgumentError(f"Unknown environment scope: {scope!r}") from None


def validate_variable_name(name: str | None, scope: EnvironmentScope = EnvironmentScope.PROCESS) -> str:
    """
    Check that name can be used as an environment variable name.

    Raises:
        InvalidArgumentError: name is None, empty, starts with NUL, contains
            '=', or is too long for the scope.
    """
    if name is None:
        raise InvalidArgumentError("Variable name must not be None")
    if not isinstance(name, str):
        raise InvalidArgumentError(f"Variable name must be a string, got {type(name).__name__}")
    if not name:
        raise InvalidArgumentError("Variable name must not be empty")
    if name[0] == "\0":
        raise InvalidArgumentError("Variable name must not start with a NUL character")
    if "=" in name:
        raise InvalidArgumentError(f"Variable name must not contain '=': {name!r}")
    if len(name) >= MAX_VARIABLE_LENGTH:
        raise InvalidArgumentError("Variable name is too long")
    if scope is not EnvironmentScope.PROCESS and len(name) >= MAX_PERSISTED_NAME_LENGTH:
        raise InvalidArgumentError(
            f"Variable names in {scope.value} scope must be shorter than {MAX_PERSISTED_NAME_LENGTH}"
        )
    return name


def validate_variable_value(value: str, scope: EnvironmentScope = EnvironmentScope.PROCESS) -> str:
    """Check that value can be stored in the given scope."""
    if not isinstance(value, str):
        raise InvalidArgumentError(f"Variable value must be a string, got {type(value).__name__}")
    if "\0" in value:
        raise InvalidArgumentError("Variable value must not contain a NUL character")
    if scope is EnvironmentScope.PROCESS and len(value) >= MAX_VARIABLE_LENGTH:
        raise InvalidArgumentError("Variable value is too long")
    return value


def expand_variables(text: str | None, lookup: Callable[[str], str | None]) -> str:
    """
    Replace %NAME% tokens in text with lookup(NAME).

    Tokens whose name lookup() does not know are copied verbatim, and the
    closing '%' of such a token may open the next one ("%A%B%" with only B
    defined becomes "%A" + value of B). A '%' with no partner is kept.
    """
    if text is None:
        raise InvalidArgumentError("Text to expand must not be None")

    parts: list[str] = []
    pos = 0
    while True:
        start = text.find("%", pos)
        end = text.find("%", start + 1) if start >= 0 else -1
        if end < 0:
            parts.append(text[pos:])
            break

        parts.append(text[pos:start])
        name = text[start + 1 : end]
        value = lookup(name) if name else None
        if value is None:
            parts.append(text[start:end])
            pos = end
        else:
            parts.append(value)
            pos = end + 1

    return "".join(parts)


def check_lookup_name(name: str | None) -> str:
    """Lookups only need a non-empty string; the stricter rules apply to writes."""
    if name is None:
        raise InvalidArgumentError("Variable name must not be None")
    if not isinstance(name, str):
        raise InvalidArgumentError(f"Variable name must be a string, got {type(name).__name__}")
    if not name:
        raise InvalidArgumentError("Variable name must not be empty")
    return name
