# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

import copy
from collections.abc import Mapping, MutableMapping
from typing import Any


def deep_merge(target: MutableMapping, source: Any) -> MutableMapping:
    """
    Merge ``source`` into ``target`` in place and return ``target``.

    Nested mappings present on both sides are merged recursively. Every other
    value in ``source`` (scalars, lists, or a mapping replacing a non-mapping)
    overwrites the value in ``target`` wholesale. Keys only in ``target`` are
    left alone. A non-mapping ``source`` is ignored.
    """
    if not isinstance(source, Mapping):
        return target

    for key, value in source.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, MutableMapping):
            deep_merge(current, value)
        else:
            target[key] = copy.deepcopy(value)
    return target
