"""Series formula parsing and evaluation.

Public API::

    from cbdata.expressions import Evaluator, EvaluationContext, evaluate
"""

from cbdata.expressions.errors import (
    ExpressionError,
    ExpressionSyntaxError,
    ExpressionTypeError,
    FunctionArityError,
    MismatchedParenError,
    MismatchedQuote,
    MultipleAtSignsError,
    OptionParseError,
    PlaceholderCountMismatch,
    SourceFetchError,
    UnknownFunctionError,
)
from cbdata.expressions.evaluator import Evaluator, evaluate
from cbdata.expressions.options import EvaluationContext
from cbdata.expressions.provenance import Provenance

__all__ = [
    "EvaluationContext",
    "Evaluator",
    "ExpressionError",
    "ExpressionSyntaxError",
    "ExpressionTypeError",
    "FunctionArityError",
    "MismatchedParenError",
    "MismatchedQuote",
    "MultipleAtSignsError",
    "OptionParseError",
    "PlaceholderCountMismatch",
    "Provenance",
    "SourceFetchError",
    "UnknownFunctionError",
    "evaluate",
]
