"""
Display formatting for bound values.

``apply_formatter`` runs the binding's named formatter first, then the
option-driven number, date and text rules, and finally wraps the result in
the prefix and suffix.
"""

import math
import re
from datetime import date, datetime
from typing import Any, Dict, Optional, Union

from app.modules.templates.schemas import FormatterOptions

NAMED_FORMATTERS = ("number", "currency", "percentage", "uppercase", "lowercase", "capitalize", "truncate")

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "CAD": "CA$", "AUD": "A$", "INR": "₹"}
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}
# Locales that write 1.234,5
COMMA_DECIMAL_LOCALES = ("de", "es", "it", "nl", "pt", "da", "tr", "id")

MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
COMPACT_UNITS = ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K"))

OptionsInput = Optional[Union[FormatterOptions, Dict[str, Any]]]


def coerce_options(options: OptionsInput) -> Optional[FormatterOptions]:
    if options is None or isinstance(options, FormatterOptions):
        return options
    return FormatterOptions.model_validate(options)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _plain(value: float) -> str:
    if isinstance(value, int) or float(value).is_integer():
        return str(int(value))
    return f"{value:.10f}".rstrip("0").rstrip(".")


def _group_digits(digits: str, separator: str) -> str:
    groups = []
    while len(digits) > 3:
        groups.insert(0, digits[-3:])
        digits = digits[:-3]
    groups.insert(0, digits)
    return separator.join(groups)


def _localize(text: str, locale: Optional[str]) -> str:
    if locale and locale.lower().split("-")[0] in COMMA_DECIMAL_LOCALES:
        return text.translate(str.maketrans({",": ".", ".": ","}))
    return text


def _locale_number(value: float, locale: Optional[str]) -> str:
    text = f"{value:,}" if isinstance(value, int) else f"{value:,.3f}".rstrip("0").rstrip(".")
    return _localize(text, locale)


def _currency(value: float, currency: Optional[str], locale: Optional[str]) -> str:
    code = (currency or "USD").upper()
    places = 0 if code in ZERO_DECIMAL_CURRENCIES else 2
    amount = _localize(f"{abs(value):,.{places}f}", locale)
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    return f"{'-' if value < 0 else ''}{symbol}{amount}"


def apply_named_formatter(value: Any, formatter: str, options: Optional[FormatterOptions]) -> Any:
    """Named formatters only touch values of the type they understand."""
    locale = options.locale if options else None
    if formatter == "number" and is_number(value):
        return _locale_number(value, locale)
    if formatter == "currency" and is_number(value):
        return _currency(value, options.currency if options else None, locale)
    if formatter == "percentage" and is_number(value):
        decimals = options.decimals if options and options.decimals and options.decimals > 0 else 1
        return f"{value:.{decimals}f}%"
    if not isinstance(value, str):
        return value
    if formatter == "uppercase":
        return value.upper()
    if formatter == "lowercase":
        return value.lower()
    if formatter == "capitalize":
        return value[:1].upper() + value[1:].lower()
    if formatter == "truncate":
        max_length = options.max_length if options and options.max_length else 50
        suffix = options.truncate_suffix if options and options.truncate_suffix else "..."
        if len(value) > max_length:
            return value[:max(max_length - len(suffix), 0)] + suffix
    return value


def _has_number_options(options: FormatterOptions) -> bool:
    return (
        options.number_format != "none"
        or options.decimals is not None
        or options.decimal_separator != "."
        or options.round_to != "none"
        or options.show_sign
        or options.pad_zeros > 0
    )


def _to_number(value: Any) -> Optional[float]:
    if is_number(value):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def format_number(number: float, options: FormatterOptions) -> str:
    if options.round_to != "none":
        step = int(options.round_to)
        number = round(number / step) * step

    places: Optional[int] = None
    if options.decimals == -1:
        number = math.trunc(number)
        places = 0
    elif options.decimals is not None:
        places = options.decimals

    negative = number < 0
    magnitude = abs(number)
    unit = ""
    if options.number_format == "compact":
        for threshold, symbol in COMPACT_UNITS:
            if magnitude >= threshold:
                magnitude, unit = magnitude / threshold, symbol
                break

    if places is not None:
        text = f"{magnitude:.{places}f}"
    elif unit:
        text = f"{magnitude:.1f}".rstrip("0").rstrip(".")
    else:
        text = _plain(magnitude)

    integer_part, _, fraction = text.partition(".")
    if options.pad_zeros:
        integer_part = integer_part.zfill(options.pad_zeros)
    if options.number_format in ("comma", "space"):
        separator = "," if options.number_format == "comma" else " "
        if separator == options.decimal_separator:
            separator = "."
        integer_part = _group_digits(integer_part, separator)

    text = integer_part + (options.decimal_separator + fraction if fraction else "") + unit
    if negative and number != 0:
        return "-" + text
    if options.show_sign and number > 0:
        return "+" + text
    return text


def parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _relative_day(moment: datetime, now: datetime) -> str:
    days = (moment.date() - now.date()).days
    if days == 0:
        return "Today"
    if days == -1:
        return "Yesterday"
    if days == 1:
        return "Tomorrow"
    return f"In {days} days" if days > 0 else f"{-days} days ago"


def format_date(moment: datetime, date_format: str, now: Optional[datetime] = None) -> str:
    month = MONTHS[moment.month - 1]
    weekday = WEEKDAYS[moment.weekday()]
    patterns = {
        "dd-mm-yyyy": f"{moment.day:02d}-{moment.month:02d}-{moment.year}",
        "mm-dd-yyyy": f"{moment.month:02d}-{moment.day:02d}-{moment.year}",
        "yyyy-mm-dd": f"{moment.year}-{moment.month:02d}-{moment.day:02d}",
        "day-month-year": f"{moment.day} {month} {moment.year}",
        "month-day-year": f"{month} {moment.day}, {moment.year}",
        "written-full": f"{weekday}, {month} {moment.day}, {moment.year}",
        "written-short": f"{weekday[:3]}, {month[:3]} {moment.day}, {moment.year}",
        "day-month": f"{moment.day} {month}",
        "month-year": f"{month} {moment.year}",
        "weekday-only": weekday,
        "day-only": str(moment.day),
        "month-only": month,
        "year-only": str(moment.year),
    }
    if date_format == "relative":
        return _relative_day(moment, now or datetime.now(moment.tzinfo))
    return patterns[date_format]


def format_time(moment: datetime, time_format: str, show_seconds: bool = False) -> str:
    seconds = f":{moment.second:02d}" if show_seconds else ""
    if time_format == "12h":
        hour = moment.hour % 12 or 12
        return f"{hour}:{moment.minute:02d}{seconds} {'AM' if moment.hour < 12 else 'PM'}"
    return f"{moment.hour:02d}:{moment.minute:02d}{seconds}"


def apply_text_options(text: str, options: FormatterOptions) -> str:
    for replacement in options.replacements:
        if replacement.match.strip():
            text = re.sub(re.escape(replacement.match), lambda _: replacement.replace, text, flags=re.IGNORECASE)

    if options.text_case == "uppercase":
        text = text.upper()
    elif options.text_case == "lowercase":
        text = text.lower()
    elif options.text_case == "capitalize":
        text = text[:1].upper() + text[1:].lower()
    elif options.text_case == "titlecase":
        text = re.sub(r"\b(\w)", lambda m: m.group(1).upper(), text.lower())

    if options.trim_start:
        text = text[options.trim_start:]
    if options.trim_end:
        text = text[:-options.trim_end] if options.trim_end < len(text) else ""
    return text


def _has_text_options(options: FormatterOptions) -> bool:
    return bool(
        options.text_case != "none"
        or any(r.match.strip() for r in options.replacements)
        or options.trim_start
        or options.trim_end
    )


def apply_formatter(
    value: Any,
    formatter: Optional[str] = None,
    options: OptionsInput = None,
    now: Optional[datetime] = None,
) -> Any:
    """Format a raw bound value for display. ``None`` passes through untouched."""
    if value is None:
        return None
    options = coerce_options(options)
    result = apply_named_formatter(value, formatter, options) if formatter else value
    if options is None:
        return result

    if _has_number_options(options):
        number = _to_number(result)
        if number is not None:
            result = format_number(number, options)

    if options.date_format != "none" or options.time_format != "none":
        moment = parse_datetime(result) if not is_number(result) else None
        if moment is not None:
            parts = []
            if options.date_format != "none":
                parts.append(format_date(moment, options.date_format, now))
            if options.time_format != "none":
                parts.append(format_time(moment, options.time_format, options.show_seconds))
            result = " ".join(parts)

    if _has_text_options(options):
        result = apply_text_options(str(result), options)

    if options.prefix or options.suffix:
        result = f"{options.prefix or ''}{result}{options.suffix or ''}"
    return result
