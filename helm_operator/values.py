"""Module for decoding the opaque values payload of a release request."""

from collections.abc import Mapping
import copy
import json
import logging
from typing import Any

import yaml

from .exceptions import InputException


_LOGGER = logging.getLogger(__name__)


def decode_values(raw: Any) -> dict[str, Any]:
    """Decode the values payload into a generic key/value structure.

    The payload may already be a mapping, or a JSON or YAML document string.
    Strings are parsed as JSON first so numbers and whitespace follow JSON
    rules, then as YAML. An absent payload is an empty set of values.
    """
    if raw is None:
        return {}
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            try:
                raw = yaml.safe_load(raw)
            except yaml.YAMLError as err:
                raise InputException(f"parsing values: {err}") from err
        if raw is None:
            return {}
    if not isinstance(raw, Mapping):
        raise InputException(
            f"parsing values: expected a mapping but got {type(raw).__name__}"
        )
    values = copy.deepcopy(dict(raw))
    _LOGGER.debug("Decoded values with keys %s", list(values))
    return values
