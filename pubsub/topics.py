"""MQTT topic pattern helpers."""

from __future__ import annotations

SINGLE_LEVEL = "+"
MULTI_LEVEL = "#"
SEPARATOR = "/"


def topic_matches(pattern: str, topic: str) -> bool:
    """Return True when ``topic`` matches the MQTT subscription ``pattern``.

    ``+`` matches exactly one level, ``#`` (last level only) matches the
    parent level and everything below it.
    """
    pattern_levels = pattern.split(SEPARATOR)
    topic_levels = topic.split(SEPARATOR)

    for index, level in enumerate(pattern_levels):
        if level == MULTI_LEVEL:
            return index == len(pattern_levels) - 1
        if index >= len(topic_levels):
            return False
        if level != SINGLE_LEVEL and level != topic_levels[index]:
            return False

    return len(pattern_levels) == len(topic_levels)


def device_segment_index(pattern: str) -> int:
    try:
        return pattern.split(SEPARATOR).index(SINGLE_LEVEL)
    except ValueError as exc:
        raise ValueError(
            f"Topic pattern {pattern!r} has no single-level wildcard for the device id."
        ) from exc


def device_id_from_topic(pattern: str, topic: str) -> str:
    """Extract the device id encoded at the pattern's first ``+`` level."""
    if not topic_matches(pattern, topic):
        raise ValueError(f"Topic {topic!r} does not match pattern {pattern!r}.")
    device_id = topic.split(SEPARATOR)[device_segment_index(pattern)]
    if not device_id:
        raise ValueError(f"Topic {topic!r} has an empty device segment.")
    return device_id


def topic_for_device(pattern: str, device_id: str) -> str:
    """Build the concrete publish topic for ``device_id`` from ``pattern``."""
    if not device_id or any(char in device_id for char in (SEPARATOR, SINGLE_LEVEL, MULTI_LEVEL)):
        raise ValueError(f"Device id {device_id!r} cannot be used as a topic level.")
    levels = pattern.split(SEPARATOR)
    levels[device_segment_index(pattern)] = device_id
    if MULTI_LEVEL in levels or SINGLE_LEVEL in levels:
        raise ValueError(f"Topic pattern {pattern!r} has more than one wildcard level.")
    return SEPARATOR.join(levels)
