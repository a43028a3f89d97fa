"""Expansion of ``${NAME||default}`` environment references in values."""

from __future__ import annotations

import os
import re

# A variable name holds letters, digits and underscores and cannot start with a digit.
_VARIABLE = re.compile(r"\$\{([a-zA-Z_][\w]+)((?:,,|\^\^)?)\|{2}(.*?)\}", re.ASCII)


def expand_value_env(value: str) -> str:
    """Replace ``${NAME||default}`` references with environment values.

    An unset or empty variable yields the default. ``${NAME^^||d}`` upper-cases
    and ``${NAME,,||d}`` lower-cases the environment value. Surrounding
    whitespace is stripped.
    """
    value = value.strip()
    result = value
    for match in _VARIABLE.finditer(value):
        name, case, default = match.groups()
        item = os.environ.get(name, "")
        if not item:
            item = default
        elif case == "^^":
            item = item.upper()
        elif case == ",,":
            item = item.lower()
        result = result.replace(match.group(0), item)
    return result