"""Evaluation context and ``#option`` overlays.

An option overlay such as ``GDPH#startDate:"2015-01-01"#ignoreNan`` folds
``start_date`` and ``ignore_nan`` into a *copy* of the context that is used
for the text before the first ``#``.  The parent context is never touched.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cbdata.expressions.errors import OptionParseError
from cbdata.expressions.scanner import split_top_level, strip_quotes, top_level_positions

DEFAULT_DB_ID = "USECON"
FREQUENCY_CODES = ("D", "W", "M", "Q", "A")

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y%m%d", "%d-%b-%Y")
_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}

# Option keys are matched after lower-casing and dropping underscores, so
# ``startDate``, ``start_date`` and ``STARTDATE`` all land on one field.
_FIELD_ALIASES: dict[str, str] = {
    "dbid": "db_id",
    "db": "db_id",
    "startdate": "start_date",
    "start": "start_date",
    "enddate": "end_date",
    "end": "end_date",
    "aggfreq": "frequency",
    "frequency": "frequency",
    "freq": "frequency",
    "ignorenan": "ignore_nan",
    "asof": "as_of",
    "asofstart": "as_of_start",
    "asofend": "as_of_end",
}

_DATE_FIELDS = {"start_date", "end_date", "as_of", "as_of_start", "as_of_end"}
_BOOL_FIELDS = {"ignore_nan"}


class EvaluationContext(BaseModel):
    """Settings threaded through an evaluation by value.

    Instances are immutable; :meth:`with_options` returns an updated copy.
    """

    model_config = ConfigDict(frozen=True)

    db_id: str = DEFAULT_DB_ID
    start_date: date | None = None
    end_date: date | None = None
    frequency: str | None = None
    ignore_nan: bool = False
    as_of: date | None = None
    as_of_start: date | None = None
    as_of_end: date | None = None
    extras: dict[str, Any] = Field(default_factory=dict)

    def with_options(self, /, **options: Any) -> EvaluationContext:
        """Return a copy with *options* folded in.

        Keys may use any alias accepted by the ``#option`` syntax.  Unknown
        keys are stored in ``extras``.  ``None`` values are ignored.

        Raises:
            OptionParseError: If a value cannot be coerced to its field type.
        """
        updates: dict[str, Any] = {}
        extras = dict(self.extras)
        for key, value in options.items():
            if value is None:
                continue
            field = resolve_option_key(key)
            if field is None:
                extras[key] = value
            else:
                updates[field] = coerce_option(field, value, key=key)
        updates["extras"] = extras
        return self.model_copy(update=updates)


def resolve_option_key(key: str) -> str | None:
    """Map an option key to its context field, or None for free-form keys."""
    norm = key.strip().lower().replace("_", "")
    return _FIELD_ALIASES.get(norm)


def parse_date(value: Any) -> date:
    """Coerce a date-like value (``date``, ``datetime`` or string) to ``date``.

    Raises:
        ValueError: If *value* is not a recognised date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    raise ValueError(f"Unrecognised date: {value!r}")


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def parse_frequency(value: Any) -> str:
    code = str(value).strip().upper()
    if code not in FREQUENCY_CODES:
        raise ValueError(
            f"Unsupported frequency {value!r}; expected one of {', '.join(FREQUENCY_CODES)}"
        )
    return code


def coerce_option(field: str, value: Any, key: str | None = None) -> Any:
    """Coerce *value* for context *field*.

    A bare ``#key`` arrives as ``True``; that is only meaningful for boolean
    fields.

    Raises:
        OptionParseError: On any incompatible value.
    """
    label = key or field
    if value is True and field not in _BOOL_FIELDS:
        raise OptionParseError(f"Option {label!r} requires a value")
    try:
        if field in _DATE_FIELDS:
            return parse_date(value)
        if field in _BOOL_FIELDS:
            return parse_bool(value)
        if field == "frequency":
            return parse_frequency(value)
        if field == "db_id":
            db_id = str(value).strip().upper()
            if not db_id:
                raise ValueError("empty database id")
            return db_id
    except ValueError as exc:
        raise OptionParseError(f"Invalid value for option {label!r}: {exc}") from exc
    return value


def parse_option(text: str) -> tuple[str, Any]:
    """Parse one ``key`` or ``key:value`` option string.

    Returns:
        Tuple of (key, value); a bare key yields ``True``.

    Raises:
        OptionParseError: If the key is empty.
    """
    if ":" in text:
        key, raw = text.split(":", 1)
        value: Any = strip_quotes(raw)
    else:
        key, value = text, True
    key = key.strip()
    if not key:
        raise OptionParseError("Empty option name", expression=text)
    return key, value


def split_options(text: str) -> tuple[str, list[str]]:
    """Split ``main#opt1#opt2`` at top-level ``#`` signs.

    Returns:
        Tuple of (text before the first ``#``, list of option strings).
    """
    first = top_level_positions(text, "#")[0]
    main = text[:first]
    return main, split_top_level(text[first + 1 :], "#")


def apply_options(context: EvaluationContext, option_texts: list[str]) -> EvaluationContext:
    """Fold option strings into a copy of *context*, left to right."""
    options: dict[str, Any] = {}
    for text in option_texts:
        key, value = parse_option(text)
        options[key] = value
    return context.with_options(**options)
