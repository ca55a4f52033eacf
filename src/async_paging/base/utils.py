import json
import logging
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from typing import (Any, Dict, List, Mapping, Optional, Set, Tuple, Type,
                    Union, get_args, get_origin, get_type_hints)

logger = logging.getLogger(__name__)


def prepare_for_binding(data: Any) -> Any:
    """
    Convert one bound value into something every driver can bind.

    - Pydantic models and dataclasses become JSON text of their fields
    - dicts, lists and sets become JSON text
    - Pydantic URL types become strings
    - everything else (numbers, strings, dates, None) is returned as-is

    Tuples are left alone; drivers bind them as rows or reject them.
    """
    if data is None:
        return None

    if is_dataclass(data) and not isinstance(data, type):
        return json.dumps(asdict(data), default=str)

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        try:
            return json.dumps(data.model_dump(mode="json", by_alias=True))
        except Exception as e:
            logger.debug(f"Error using model_dump(mode='json', by_alias=True): {e}")
            return json.dumps(data.model_dump(by_alias=True), default=str)

    if isinstance(data, (dict, list)):
        return json.dumps(data, default=str)

    if isinstance(data, (set, frozenset)):
        return json.dumps(list(data), default=str)

    if hasattr(data, "__class__") and data.__class__.__module__ == "pydantic.networks":
        return str(data)

    return data


def prepare_bound_values(
    bound_values: Optional[Union[List[Any], Mapping[str, Any]]],
) -> Union[List[Any], Dict[str, Any]]:
    """Apply prepare_for_binding to every value of a positional list or named mapping."""
    if bound_values is None:
        return []
    if isinstance(bound_values, Mapping):
        return {k: prepare_for_binding(v) for k, v in bound_values.items()}
    return [prepare_for_binding(v) for v in bound_values]


def strip_terminator(query: str) -> str:
    """Drop trailing whitespace and statement terminators (`;`)."""
    return query.rstrip().rstrip(";").rstrip()


def _is_none_type(t: Any) -> bool:
    return t is type(None)


def _unwrap_optional(hint: Any) -> Tuple[Any, bool]:
    """Returns (inner type, is_optional) for Optional[X]; other hints pass through."""
    if get_origin(hint) is Union:
        args = [a for a in get_args(hint) if not _is_none_type(a)]
        if len(args) == 1:
            return args[0], True
    return hint, False


def _is_complex(hint: Any) -> bool:
    origin = get_origin(hint)
    if origin in (list, List, dict, Dict, set, Set, tuple, Tuple, Mapping):
        return True
    return isinstance(hint, type) and (
        issubclass(hint, (list, dict, set, tuple))
        or is_dataclass(hint)
        or hasattr(hint, "model_dump")
    )


def coerce_record(record: Mapping[str, Any], shape: Type[Any]) -> Dict[str, Any]:
    """
    Convert stored column values towards the field types `shape` declares.

    Handles the representations the SQL backends fall back to: 0/1 for bool,
    ISO-8601 text for datetime/date and JSON text for collections and nested
    models. Columns without a declared type are passed through unchanged.
    """
    try:
        hints = get_type_hints(shape)
    except Exception as e:
        logger.warning(f"Could not get type hints for {shape.__name__} during row conversion: {e}")
        hints = {}

    processed: Dict[str, Any] = {}
    for key, value in dict(record).items():
        target = hints.get(key)
        if target is None or value is None:
            processed[key] = value
            continue

        actual, _ = _unwrap_optional(target)

        if isinstance(value, str) and _is_complex(actual):
            try:
                processed[key] = json.loads(value)
            except (json.JSONDecodeError, TypeError):
                logger.warning(
                    f"Failed to JSON decode field '{key}' for expected type {target}. "
                    f"Value: '{value[:100]}'. Falling back to raw string value."
                )
                processed[key] = value
        elif isinstance(value, int) and not isinstance(value, bool) and actual is bool:
            processed[key] = bool(value)
        elif isinstance(value, str) and actual in (datetime, date):
            try:
                if actual is datetime:
                    if value.endswith("Z"):
                        value = value[:-1] + "+00:00"
                    processed[key] = datetime.fromisoformat(value)
                else:
                    processed[key] = date.fromisoformat(value)
            except ValueError as dt_error:
                logger.warning(
                    f"Failed to parse field '{key}' as {actual.__name__}. Value: '{value}'. "
                    f"Error: {dt_error}. Assigning raw string value."
                )
                processed[key] = value
        else:
            processed[key] = value
    return processed
