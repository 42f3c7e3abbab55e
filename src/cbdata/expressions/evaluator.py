"""Recursive evaluator for series formulas.

Formulas are evaluated straight from their text, with no parse tree.  Each
(sub-)expression is passed through an ordered chain of detectors; the first
that matches decides how the text is taken apart:

1. binary operator at the top level (``+ - * /``, left to right),
   then a leading unary sign;
2. ``#option`` overlay;
3. function call or grouping parentheses;
4. ``%d`` placeholder for an injected table;
5. numeric literal;
6. quoted string literal;
7. series reference ``NAME`` or ``NAME@DB``.

Every call maps ``(text, context, injected tables)`` to ``(value,
provenance)`` and never mutates its inputs.
"""

from __future__ import annotations

import logging
import re
import time
from typing import TYPE_CHECKING, Any, Sequence

import polars as pl

from cbdata.expressions.arithmetic import OPERATIONS, apply_operation, negate
from cbdata.expressions.errors import (
    ExpressionSyntaxError,
    FunctionArityError,
    MismatchedParenError,
    MismatchedQuote,
    MultipleAtSignsError,
    PlaceholderCountMismatch,
    SourceFetchError,
    UnknownFunctionError,
)
from cbdata.expressions.options import EvaluationContext, apply_options, split_options
from cbdata.expressions.provenance import (
    Provenance,
    combine,
    literal_leaf,
    placeholder_leaf,
)
from cbdata.expressions.scanner import (
    PLACEHOLDER,
    QUOTE,
    count_placeholders,
    find_operator_split,
    has_unquoted,
    scan_depth,
    split_top_level,
    top_level_positions,
)
from cbdata.functions.registry import TransformRegistry, TransformSpec, default_registry
from cbdata.logging.events import (
    SOURCE_FETCH_FAILED,
    EventType,
    emit_error,
    emit_info,
    error_code_for,
)

if TYPE_CHECKING:
    from cbdata.sources.base import SourceRegistry

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

# (absolute index in the caller's table list, table)
Injected = list[tuple[int, pl.DataFrame]]


class Evaluator:
    """Evaluate formulas against a source registry and a transform registry.

    Both registries are immutable and fixed at construction; an evaluator
    holds no other state and can be shared between threads.
    """

    def __init__(
        self,
        sources: SourceRegistry | None = None,
        transforms: TransformRegistry | None = None,
    ) -> None:
        if sources is None:
            from cbdata.sources import default_sources

            sources = default_sources()
        self.sources = sources
        self.transforms = transforms if transforms is not None else default_registry()

    def evaluate(
        self,
        formula: str,
        context: EvaluationContext | None = None,
        tables: Sequence[pl.DataFrame] = (),
        batch_id: str | None = None,
    ) -> tuple[Any, Provenance]:
        """Evaluate *formula*.

        Warning:
            ``+ - * /`` share one precedence level and group left to right,
            so ``0.5*X+0.5*Y`` means ``((0.5*X)+0.5)*Y``.  Write weighted
            sums with parentheses: ``(0.5*X)+(0.5*Y)``.

        Args:
            formula: Formula text, e.g. ``DIFA(GDPH@FRED)``.
            context: Root evaluation context; defaults apply if omitted.
            tables: Tables substituted for ``%d`` placeholders, in order of
                appearance.
            batch_id: Retrieval batch whose log also receives the events of
                this evaluation.

        Returns:
            Tuple of (value, provenance).  The value is a time series
            table, a float, or a string.

        Raises:
            PlaceholderCountMismatch: If the ``%d`` count differs from
                ``len(tables)``.
            ExpressionError: Any other evaluation failure.
        """
        context = context if context is not None else EvaluationContext()
        tables = list(tables)
        expected = count_placeholders(formula)
        if expected != len(tables):
            raise PlaceholderCountMismatch(formula, expected, len(tables))

        event_ctx = {"formula": formula, "db_id": context.db_id}
        emit_info(EventType.eval_started, f"Evaluating {formula}", event_ctx, batch_id=batch_id)
        t0 = time.monotonic()
        try:
            value, prov = self._eval(formula, context, list(enumerate(tables)), batch_id)
        except Exception as exc:
            emit_error(
                EventType.eval_failed,
                str(exc),
                event_ctx,
                error_code=error_code_for(exc),
                batch_id=batch_id,
            )
            raise
        elapsed_ms = round((time.monotonic() - t0) * 1000, 2)
        emit_info(
            EventType.eval_completed,
            f"Evaluated {formula}",
            {**event_ctx, "series": prov.series_ids(), "elapsed_ms": elapsed_ms},
            batch_id=batch_id,
        )
        return value, prov

    # ------------------------------------------------------------------
    # Detector chain
    # ------------------------------------------------------------------

    def _eval(
        self, text: str, context: EvaluationContext, injected: Injected, batch_id: str | None = None
    ) -> tuple[Any, Provenance]:
        text = text.strip()
        if not text:
            raise ExpressionSyntaxError("Empty expression")
        logger.debug("eval %r (db_id=%s, %d table(s))", text, context.db_id, len(injected))

        split = find_operator_split(text)
        if split is not None:
            return self._binary(text, split, context, injected, batch_id)
        if text[0] in "+-" and not _NUMBER_RE.fullmatch(text):
            return self._unary(text, context, injected, batch_id)
        if top_level_positions(text, "#"):
            main, option_texts = split_options(text)
            return self._eval(main, apply_options(context, option_texts), injected, batch_id)
        if has_unquoted(text, "()"):
            return self._call(text, context, injected, batch_id)
        if count_placeholders(text):
            return self._placeholder(text, injected)
        if _NUMBER_RE.fullmatch(text):
            value = float(text)
            return value, literal_leaf(value)
        if QUOTE in text:
            return self._string(text)
        return self._series(text, context, batch_id)

    def _binary(
        self,
        text: str,
        pos: int,
        context: EvaluationContext,
        injected: Injected,
        batch_id: str | None,
    ) -> tuple[Any, Provenance]:
        left, right = text[:pos], text[pos + 1 :]
        if not left.strip() or not right.strip():
            raise ExpressionSyntaxError("Missing operand", expression=text, position=pos)
        n_left = count_placeholders(left)
        lhs, lprov = self._eval(left, context, injected[:n_left], batch_id)
        rhs, rprov = self._eval(right, context, injected[n_left:], batch_id)
        op = OPERATIONS[text[pos]]
        value = apply_operation(op.symbol, lhs, rhs, ignore_nan=context.ignore_nan)
        return value, combine(op.name, lprov, rprov)

    def _unary(
        self, text: str, context: EvaluationContext, injected: Injected, batch_id: str | None
    ) -> tuple[Any, Provenance]:
        operand = text[1:]
        if not operand.strip():
            raise ExpressionSyntaxError("Missing operand", expression=text, position=0)
        value, prov = self._eval(operand, context, injected, batch_id)
        if text[0] == "+":
            return value, prov
        return negate(value), combine("negation", prov)

    def _call(
        self, text: str, context: EvaluationContext, injected: Injected, batch_id: str | None
    ) -> tuple[Any, Provenance]:
        depth, quoted = scan_depth(text)
        open_idx = next((i for i, ch in enumerate(text) if ch == "(" and not quoted[i]), None)
        if open_idx is None or min(depth) < 0:
            raise MismatchedParenError("Mismatched parentheses", expression=text)
        close_idx = next(
            (i for i in range(open_idx, len(text)) if depth[i] == 0),
            None,
        )
        if close_idx != len(text) - 1:
            raise MismatchedParenError("Mismatched parentheses", expression=text)

        name = text[:open_idx].strip()
        interior = text[open_idx + 1 : close_idx]
        arg_texts = split_top_level(interior, ",") if interior.strip() else []

        values: list[Any] = []
        provs: list[Provenance] = []
        offset = 0
        for arg in arg_texts:
            n = count_placeholders(arg)
            value, prov = self._eval(arg, context, injected[offset : offset + n], batch_id)
            offset += n
            values.append(value)
            provs.append(prov)

        if not name:
            if len(values) != 1:
                raise ExpressionSyntaxError(
                    "Grouping parentheses must hold exactly one expression", expression=text
                )
            return values[0], provs[0]

        candidates = self.transforms.candidates(name)
        if not candidates:
            raise UnknownFunctionError(name)

        errors: list[Exception] = []
        for spec in candidates:
            try:
                result = _apply(spec, name, values)
            except Exception as exc:
                logger.debug("%s via %r failed: %s", name, spec.name, exc)
                errors.append(exc)
                continue
            return result, combine(name, *provs)
        raise errors[0]

    def _placeholder(self, text: str, injected: Injected) -> tuple[Any, Provenance]:
        if text != PLACEHOLDER:
            raise ExpressionSyntaxError("Unexpected text around placeholder", expression=text)
        if not injected:
            raise PlaceholderCountMismatch(text, 1, 0)
        index, table = injected[0]
        return table, placeholder_leaf(index)

    def _string(self, text: str) -> tuple[Any, Provenance]:
        if len(text) < 2 or text[0] != QUOTE or text[-1] != QUOTE:
            raise MismatchedQuote("Mismatched quote characters", expression=text)
        value = text[1:-1]
        return value, literal_leaf(value)

    def _series(
        self, text: str, context: EvaluationContext, batch_id: str | None
    ) -> tuple[Any, Provenance]:
        parts = text.split("@")
        if len(parts) > 2:
            raise MultipleAtSignsError("Multiple @ signs in series call", expression=text)
        name = parts[0].strip()
        if not name:
            raise ExpressionSyntaxError("Empty series name", expression=text)
        if len(parts) == 2:
            context = context.with_options(db_id=parts[1])

        connector = self.sources.resolve(context.db_id)
        fetch_ctx = {"series": name, "db_id": context.db_id}
        try:
            table, prov = connector.fetch(name, context)
        except SourceFetchError:
            raise
        except Exception as exc:
            emit_error(
                EventType.source_fetch_failed,
                str(exc),
                fetch_ctx,
                error_code=SOURCE_FETCH_FAILED,
                batch_id=batch_id,
            )
            raise SourceFetchError(name, context.db_id, str(exc)) from exc
        emit_info(
            EventType.source_fetch,
            f"Pulled {name}@{context.db_id}",
            {**fetch_ctx, "rows": table.height},
            batch_id=batch_id,
        )
        return table, prov


def _apply(spec: TransformSpec, name: str, values: list[Any]) -> Any:
    if not spec.accepts(len(values)):
        raise FunctionArityError(
            spec.name,
            len(values),
            f"{name.upper()} takes {spec.arity_text()} argument(s), {len(values)} given",
        )
    return spec.func(*values)


def evaluate(
    formula: str,
    context: EvaluationContext | None = None,
    tables: Sequence[pl.DataFrame] = (),
) -> tuple[Any, Provenance]:
    """Evaluate *formula* with the default sources and transformations."""
    return Evaluator().evaluate(formula, context, tables)
