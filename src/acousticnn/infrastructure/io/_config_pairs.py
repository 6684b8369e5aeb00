"""
Config-string tokenization for layer initialization.

Layer initialization configs are whitespace-separated ``<Key> value`` pairs,
for example::

    <ParamRange> 0.1 <LearnRateCoef> 0.5 <MaxGrad> 5

This module turns such a string (or an already-split sequence of pairs) into
an ordered list of ``(key, value)`` tuples with normalized keys. Interpreting
the keys is left to the layer, which performs a closed case analysis over the
options it recognizes.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple, Union

from ...domain._errors import ConfigError

ConfigPairs = List[Tuple[str, str]]
ConfigSource = Union[str, Iterable[Tuple[str, object]]]


def normalize_key(key: str) -> str:
    """
    Return `key` wrapped in angle brackets (``ParamRange`` -> ``<ParamRange>``).
    """
    key = str(key).strip()
    if not (key.startswith("<") and key.endswith(">")):
        key = f"<{key.strip('<>')}>"
    return key


def parse_config_pairs(config: ConfigSource) -> ConfigPairs:
    """
    Split a layer config into ordered ``(key, value)`` pairs.

    Parameters
    ----------
    config : str | Iterable[tuple[str, object]]
        Either a config string of alternating keys and values, or an iterable
        of pairs. Values from pairs are converted with `str`.

    Returns
    -------
    list[tuple[str, str]]
        Pairs in input order, keys normalized to ``<Key>`` form.

    Raises
    ------
    ConfigError
        If a key is missing its value, or a value appears where a key is
        expected.
    """
    if not isinstance(config, str):
        return [(normalize_key(k), str(v).strip()) for k, v in config]

    tokens = config.split()
    pairs: ConfigPairs = []
    i = 0
    while i < len(tokens):
        key = tokens[i]
        if not key.startswith("<"):
            raise ConfigError(f"Expected a <Key> token, got {key!r}", token=key)
        if i + 1 >= len(tokens) or tokens[i + 1].startswith("<"):
            raise ConfigError(f"Missing value for config token {key}", token=key)
        pairs.append((normalize_key(key), tokens[i + 1]))
        i += 2
    return pairs


def parse_float(key: str, value: str) -> float:
    """
    Parse a config value as float, raising `ConfigError` on failure.
    """
    try:
        return float(value)
    except ValueError as e:
        raise ConfigError(
            f"Value for {key} must be a number, got {value!r}", token=key
        ) from e


def parse_int(key: str, value: str) -> int:
    """
    Parse a config value as int, raising `ConfigError` on failure.
    """
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(
            f"Value for {key} must be an integer, got {value!r}", token=key
        ) from e
