"""Shared type aliases.

Configuration, input and output documents are plain JSON values:
null, booleans, numbers, strings, arrays and objects.
"""

from typing import Any, Dict, List, Union

JsonValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]
JsonDocument = Dict[str, Any]
