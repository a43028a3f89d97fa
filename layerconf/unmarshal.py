"""Populate dataclass instances and dicts from layered, dot-separated configuration keys.

Field names map to keys in snake case; ``field(metadata={"yaml": "name"})``
overrides the key, ``{"yaml": "-"}`` skips the field and ``{"yaml": ",inline"}``
marks a mapping whose entries are collected from sibling keys.
"""

from __future__ import annotations

import copy
import dataclasses
import inspect
import math
import re
import types
import typing
from decimal import Decimal
from typing import Any, Protocol, Union

_TAG = "yaml"
_INLINE = "inline"
_INLINE_TAG = ",inline"
_IGNORE_TAG = "-"
_FMT_VALUE_NOT_MATCHED = "value types of %s not matched. expect type : %s, config client type : %s"

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_OCTAL = re.compile(r"[+-]?0[0-7]+")
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_ANNOTATION_LEXEME = re.compile(r"\.\.\.|[A-Za-z_][\w.]*|'[^']*'|\"[^\"]*\"|[\[\],|]")
_BASE_NAMES: dict[str, Any] = {
    "int": int,
    "str": str,
    "float": float,
    "bool": bool,
    "bytes": bytes,
    "list": list,
    "dict": dict,
    "tuple": tuple,
    "object": object,
    "None": None,
    "typing": typing,
    "Any": Any,
    "Optional": typing.Optional,
    "Union": Union,
    "List": typing.List,
    "Dict": typing.Dict,
    "Tuple": typing.Tuple,
}


class UnmarshalError(ValueError):
    """Raised when configuration cannot be placed into the supplied object."""


class _Store(Protocol):
    def configs(self) -> dict[str, Any]: ...

    def get_config(self, key: str) -> Any: ...


def to_snake(name: str) -> str:
    """Convert a CamelCase name to snake_case."""
    out: list[str] = []
    length = len(name)
    for i, ch in enumerate(name):
        if i > 0 and ch.isupper() and (
            (i + 1 < length and name[i + 1].islower()) or name[i - 1].islower()
        ):
            out.append("_")
        out.append(ch.lower())
    return "".join(out)


def get_tag_key(current_tag: str, add_tag: str) -> str:
    """Join two key levels with a dot, ignoring empty parts."""
    if not current_tag:
        return add_tag
    if not add_tag:
        return current_tag
    return f"{current_tag}.{add_tag}"


def check_prefix(heap: str, prefix: str) -> tuple[bool, int]:
    """Return whether ``heap`` starts with ``prefix`` and the length matched."""
    if heap.startswith(prefix):
        return True, len(prefix)
    return False, 0


# --- annotation resolution -------------------------------------------------


class _AnnotationParser:
    """Resolve a textual type annotation against a namespace of names."""

    def __init__(self, text: str, namespace: dict[str, Any]) -> None:
        self._namespace = namespace
        self._lexemes: list[str] = []
        pos = 0
        for match in _ANNOTATION_LEXEME.finditer(text):
            if text[pos : match.start()].strip():
                raise ValueError(f"unsupported annotation: {text!r}")
            self._lexemes.append(match.group())
            pos = match.end()
        if text[pos:].strip() or not self._lexemes:
            raise ValueError(f"unsupported annotation: {text!r}")
        self._pos = 0

    def parse(self) -> Any:
        value = self._union()
        if self._pos != len(self._lexemes):
            raise ValueError("trailing text in annotation")
        return value

    def _peek(self) -> str | None:
        return self._lexemes[self._pos] if self._pos < len(self._lexemes) else None

    def _take(self) -> str:
        lexeme = self._peek()
        if lexeme is None:
            raise ValueError("unexpected end of annotation")
        self._pos += 1
        return lexeme

    def _union(self) -> Any:
        parts = [self._term()]
        while self._peek() == "|":
            self._take()
            parts.append(self._term())
        if len(parts) == 1:
            return parts[0]
        return Union[tuple(parts)]

    def _lookup(self, dotted: str) -> Any:
        head, *rest = dotted.split(".")
        if head not in self._namespace:
            raise LookupError(head)
        value = self._namespace[head]
        for part in rest:
            value = getattr(value, part)
        return value

    def _term(self) -> Any:
        lexeme = self._take()
        if lexeme == "...":
            return Ellipsis
        if lexeme[0] in "'\"":
            return _AnnotationParser(lexeme[1:-1], self._namespace).parse()
        if not (lexeme[0].isalpha() or lexeme[0] == "_"):
            raise ValueError(f"unexpected text {lexeme!r}")
        value = self._lookup(lexeme)
        if value is None:
            value = type(None)
        if self._peek() == "[":
            self._take()
            args = [self._union()]
            while self._peek() == ",":
                self._take()
                args.append(self._union())
            if self._take() != "]":
                raise ValueError("expected ']'")
            value = value[args[0] if len(args) == 1 else tuple(args)]
        return value


# --- type inspection -------------------------------------------------------


def _is_dataclass_type(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _is_union(tp: Any) -> bool:
    return typing.get_origin(tp) in (Union, types.UnionType)


def _split_optional(tp: Any) -> tuple[Any, bool]:
    if _is_union(tp):
        args = typing.get_args(tp)
        rest = [arg for arg in args if arg is not type(None)]
        if len(rest) == 1 and len(rest) != len(args):
            return rest[0], True
    return tp, False


def _origin(tp: Any) -> Any:
    return typing.get_origin(tp) or tp


def _is_composite(tp: Any) -> bool:
    return _is_dataclass_type(tp) or _origin(tp) is dict


def _is_scalar(tp: Any) -> bool:
    return tp in (str, int, float, bool) or tp is Any or tp is object


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


def _hints(cls: type) -> dict[str, Any]:
    module = inspect.getmodule(cls)
    namespace = {**_BASE_NAMES, **(vars(module) if module is not None else {})}
    hints: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        tp = f.type
        if isinstance(tp, str):
            try:
                tp = _AnnotationParser(tp, namespace).parse()
            except (LookupError, TypeError, ValueError, AttributeError):
                tp = Any
        hints[f.name] = tp
    return hints


def _key_name(f: dataclasses.Field) -> str | None:
    """Key a field is read from; None for an ignored field."""
    tag = f.metadata.get(_TAG, "")
    if tag == _IGNORE_TAG:
        return None
    if not tag:
        return to_snake(f.name)
    if tag == _INLINE_TAG:
        return _INLINE
    return tag


def _zero(tp: Any) -> Any:
    _, optional = _split_optional(tp)
    if optional:
        return None
    if _is_dataclass_type(tp):
        return _new_instance(tp)
    origin = _origin(tp)
    if origin is list:
        return []
    if origin is dict:
        return {}
    if origin is tuple:
        args = typing.get_args(tp)
        if args and not (len(args) == 2 and args[1] is Ellipsis):
            return tuple(_zero(arg) for arg in args)
        return ()
    if tp in (str, int, float, bool):
        return tp()
    return None


def _new_instance(cls: type) -> Any:
    hints = _hints(cls)
    kwargs = {
        f.name: _zero(hints.get(f.name, Any))
        for f in dataclasses.fields(cls)
        if f.init and f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING
    }
    return cls(**kwargs)


# --- value conversion ------------------------------------------------------


def _trim_zero_decimal(text: str) -> str:
    found_zero = False
    for i in range(len(text), 0, -1):
        ch = text[i - 1]
        if ch == ".":
            if found_zero:
                return text[: i - 1]
        elif ch == "0":
            found_zero = True
        else:
            return text
    return text


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        text = _trim_zero_decimal(value)
        if not text or text != text.strip():
            return 0
        try:
            number = int(text, 8) if _OCTAL.fullmatch(text) else int(text, 0)
        except ValueError:
            return 0
        return number if _INT64_MIN <= number <= _INT64_MAX else 0
    return 0


def _to_float(value: Any) -> float:
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, str):
        if not value or value != value.strip():
            return 0.0
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value in _TRUE_WORDS
    return False


def _format_float(number: float) -> str:
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "+Inf" if number > 0 else "-Inf"
    text = format(Decimal(repr(number)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return ""


def _to_list(value: Any, tp: Any, current: Any) -> Any:
    if not isinstance(value, list):
        return current
    args = typing.get_args(tp)
    elem = args[0] if args else Any
    result = []
    for item in value:
        try:
            result.append(_convert(item, elem, _zero(elem)))
        except UnmarshalError:
            continue
    return result


def _to_tuple(value: Any, tp: Any, current: Any) -> Any:
    if not isinstance(value, list):
        return current
    args = typing.get_args(tp)
    if not args or (len(args) == 2 and args[1] is Ellipsis):
        return tuple(_to_list(value, list[args[0]] if args else list, current))
    if len(value) != len(args):
        raise UnmarshalError(
            f"invalid array: want {len(args)} elements but got {len(value)}"
        )
    result = []
    for item, elem in zip(value, args):
        try:
            result.append(_convert(item, elem, _zero(elem)))
        except UnmarshalError:
            result.append(_zero(elem))
    return tuple(result)


def _to_dict(value: Any, tp: Any, current: Any) -> Any:
    if not isinstance(value, dict):
        return current
    args = typing.get_args(tp)
    elem = args[1] if len(args) == 2 else Any
    result = {}
    for key, item in value.items():
        try:
            result[str(key)] = _convert(item, elem, _zero(elem))
        except UnmarshalError:
            continue
    return result


def _to_struct(value: Any, tp: type, current: Any) -> Any:
    target = copy.copy(current) if isinstance(current, tp) else _new_instance(tp)
    if isinstance(value, dict):
        hints = _hints(tp)
        for f in dataclasses.fields(tp):
            key = _key_name(f)
            if key is None:
                continue
            try:
                converted = _convert(value.get(key), hints.get(f.name, Any), getattr(target, f.name))
            except UnmarshalError:
                continue
            setattr(target, f.name, converted)
    return target


def _convert(value: Any, tp: Any, current: Any) -> Any:
    if tp is Any or tp is object:
        return value
    inner, optional = _split_optional(tp)
    if optional:
        if value is None:
            return None
        return _convert(value, inner, current if current is not None else _zero(inner))
    if _is_union(tp):
        return value
    if tp is bool:
        return _to_bool(value)
    if tp is int:
        return _to_int(value)
    if tp is float:
        return _to_float(value)
    if tp is str:
        return _to_string(value)
    origin = _origin(tp)
    if origin is list:
        return _to_list(value, tp, current)
    if origin is tuple:
        return _to_tuple(value, tp, current)
    if origin is dict:
        return _to_dict(value, tp, current)
    if _is_dataclass_type(tp):
        return _to_struct(value, tp, current)
    raise UnmarshalError("can not convert type")


def convert_value(value: Any, target_type: Any) -> Any:
    """Convert a configuration value to ``target_type`` with lenient casting rules.

    Unparseable scalars become the zero value; a non-list given for a list type
    yields an empty one; unsupported types raise UnmarshalError.
    """
    return _convert(value, target_type, _zero(target_type))


# --- inline mappings -------------------------------------------------------


def _tag_list(parent: Any) -> list[str]:
    if parent is None or not dataclasses.is_dataclass(parent):
        return []
    tags = []
    for f in dataclasses.fields(parent):
        if f.metadata.get(_TAG, "") == _INLINE_TAG:
            continue
        key = _key_name(f)
        if key is not None:
            tags.append(key)
    return tags


def _inline_keys(
    prefix: str, tag_list: list[str], configs: dict[str, Any]
) -> tuple[list[str], list[str]]:
    base = prefix.split(".inline")[0]
    qualified = {f"{base}.{tag}" for tag in tag_list}
    split_prefix = prefix.split(".")
    index = 0
    for i, part in enumerate(split_prefix):
        if part == _INLINE:
            index = i
    found: list[str] = []
    for key in configs:
        parts = key.split(".")
        if len(parts) == len(split_prefix) or len(parts) <= index:
            continue
        if index == 0 or parts[:index] != split_prefix[:index]:
            continue
        head = ".".join(parts[: index + 1])
        if head not in qualified and parts[index] not in found:
            found.append(parts[index])
    values = [value for value in found if value not in tag_list]
    return [f"{base}.{value}" for value in values], values


# --- the walker ------------------------------------------------------------


class _Unmarshaller:
    def __init__(self, store: _Store) -> None:
        self._store = store

    def fill_struct(self, obj: Any, prefix: str) -> None:
        hints = _hints(type(obj))
        for f in dataclasses.fields(obj):
            key = _key_name(f)
            if key is None:
                continue
            tp = hints.get(f.name, Any)
            value = self.resolve(tp, getattr(obj, f.name), get_tag_key(prefix, key), obj)
            setattr(obj, f.name, value)

    def resolve(self, tp: Any, current: Any, prefix: str, parent: Any) -> Any:
        inner, optional = _split_optional(tp)
        if optional:
            if current is None and not _is_composite(inner):
                return self.scalar(inner, None, prefix)
            base = current if current is not None else _zero(inner)
            return self.resolve(inner, base, prefix, parent)
        if _is_dataclass_type(tp):
            target = current if isinstance(current, tp) else _new_instance(tp)
            self.fill_struct(target, prefix)
            return target
        if _origin(tp) is dict:
            return self.populate_map(tp, prefix, parent)
        return self.scalar(tp, current, prefix)

    def scalar(self, tp: Any, current: Any, prefix: str) -> Any:
        value = self._store.get_config(prefix)
        if value is None:
            return current
        try:
            return _convert(value, tp, current)
        except UnmarshalError as exc:
            raise UnmarshalError(
                _FMT_VALUE_NOT_MATCHED % (prefix, _type_name(tp), type(value).__name__)
            ) from exc

    def build(self, tp: Any, prefix: str) -> Any:
        return self.resolve(tp, _zero(tp), prefix, None)

    def populate_map(self, tp: Any, prefix: str, parent: Any) -> dict[str, Any]:
        if not prefix:
            return self._store.configs()
        args = typing.get_args(tp)
        key_type, value_type = args if len(args) == 2 else (str, Any)
        if key_type is not str and key_type is not Any:
            raise UnmarshalError("map key should be string")
        configs = self._store.configs()
        result: dict[str, Any] = {}

        if _INLINE in prefix:
            prefixes, values = _inline_keys(prefix, _tag_list(parent), configs)
            for value in values:
                for pfx in prefixes:
                    if value in pfx.split("."):
                        result[value] = self.build(value_type, pfx)
            return result

        for key in configs:
            matched, index = check_prefix(key, prefix + ".")
            if not matched:
                continue
            rest = key[index - 1 :]
            if _is_scalar(value_type):
                value = self._store.get_config(prefix + rest)
                if value_type is not Any and value_type is not object:
                    try:
                        value = _convert(value, value_type, _zero(value_type))
                    except UnmarshalError as exc:
                        raise UnmarshalError(
                            _FMT_VALUE_NOT_MATCHED
                            % (prefix + rest, _type_name(value_type), type(value).__name__)
                        ) from exc
                result[rest[1:]] = value
            else:
                map_key = rest.split(".")[1]
                result[map_key] = self.build(value_type, get_tag_key(prefix, map_key))
        return result


def unmarshal(store: _Store, obj: Any) -> Any:
    """Fill ``obj`` from ``store`` and return it.

    ``obj`` is a dataclass instance, filled field by field from the keys its
    fields name, or a dict, replaced by every key and value of the store.
    ``store`` provides ``configs()`` and ``get_config(key)``.
    """
    if isinstance(obj, dict):
        configs = store.configs()
        obj.clear()
        obj.update(configs)
        return obj
    if obj is None or isinstance(obj, type) or not dataclasses.is_dataclass(obj):
        raise UnmarshalError("invalid object supplied")
    try:
        _Unmarshaller(store).fill_struct(obj, "")
    except UnmarshalError:
        raise
    except (TypeError, ValueError, AttributeError, IndexError) as exc:
        raise UnmarshalError(f"unmarshalling [] failed, err: {exc}") from exc
    return obj