"""Error types for expression parsing and evaluation."""

from __future__ import annotations


class ExpressionError(Exception):
    """Base class for all expression-related errors."""


class ExpressionSyntaxError(ExpressionError):
    """Malformed expression text.

    Attributes:
        expression: The (sub-)expression being evaluated.
        position: Character position where the error was detected.
    """

    def __init__(
        self,
        message: str,
        expression: str | None = None,
        position: int | None = None,
    ) -> None:
        self.expression = expression
        self.position = position
        full = message
        if expression is not None:
            full += f" in {expression!r}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class MismatchedParenError(ExpressionSyntaxError):
    """Parentheses do not pair up around a function call or group."""


class MismatchedQuote(ExpressionSyntaxError):
    """Odd number of quote characters, or a half-quoted string literal."""


class MultipleAtSignsError(ExpressionSyntaxError):
    """A series reference contains more than one ``@``."""


class OptionParseError(ExpressionSyntaxError):
    """A ``#option`` annotation could not be folded into the context."""


class PlaceholderCountMismatch(ExpressionSyntaxError):
    """Number of ``%d`` placeholders differs from the injected tables.

    Attributes:
        expected: Placeholders found in the formula.
        supplied: Tables supplied by the caller.
    """

    def __init__(self, expression: str, expected: int, supplied: int) -> None:
        self.expected = expected
        self.supplied = supplied
        super().__init__(
            f"Must include as many tables as '%d' inputs: found {expected} "
            f"placeholder(s) but {supplied} table(s) were supplied",
            expression=expression,
        )


class UnknownFunctionError(ExpressionError):
    """Transformation name not found in the registry.

    Attributes:
        func_name: The function name as written in the formula.
    """

    def __init__(self, func_name: str, message: str | None = None) -> None:
        self.func_name = func_name
        super().__init__(message or f"Undefined transformation {func_name.upper()!r}")


class FunctionArityError(ExpressionError):
    """Transformation called with an unsupported number of arguments.

    Attributes:
        func_name: The registered function name.
        given: Number of arguments supplied.
    """

    def __init__(self, func_name: str, given: int, message: str) -> None:
        self.func_name = func_name
        self.given = given
        super().__init__(message)


class ExpressionTypeError(ExpressionError):
    """Operand or argument of the wrong kind (e.g. a string in arithmetic)."""


class SourceFetchError(ExpressionError):
    """A source connector failed to deliver a series.

    The connector's exception is kept as ``__cause__``.

    Attributes:
        series: Series name requested.
        db_id: Source identifier used.
    """

    def __init__(self, series: str, db_id: str, reason: str) -> None:
        self.series = series
        self.db_id = db_id
        super().__init__(f"Pull failed for {series}@{db_id}: {reason}")
