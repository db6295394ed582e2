"""Shared constants."""

DEFAULT_NAMESPACE = "flowgraph"
DEFAULT_KEY_PREFIX = "flowgraph"

JOB_NAME_SEPARATOR = "|"

DEFAULT_LOCK_SLEEP = 0.3
DEFAULT_LOCK_BLOCK = 2.0
DEFAULT_LOCK_LEASE = 10.0

DEFAULT_ID_MAX_ATTEMPTS = 10
