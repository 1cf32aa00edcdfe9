"""Internal constants shared across the library."""

USER_AGENT = "pyconfwatch"

# In-cluster service account mount.
SERVICEACCOUNT_ROOT = "/var/run/secrets/kubernetes.io/serviceaccount"
DEFAULT_NAMESPACE = "default"

# Watch status code meaning "resourceVersion too old, relist".
HTTP_GONE = 410
AUTH_FAILURE_STATUSES: frozenset[int] = frozenset({401, 403})
