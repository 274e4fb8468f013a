"""RFC 9457 Problem Details exception hierarchy.

All API errors extend ProblemDetailError and are converted to
application/problem+json responses by the exception handler middleware.
InvalidCursorError is internal: the refresh pipeline recovers from it.
"""


class ProblemDetailError(Exception):
    def __init__(
        self,
        type_uri: str,
        title: str,
        status: int,
        detail: str,
        violations: list[dict] | None = None,
    ):
        self.type_uri = type_uri
        self.title = title
        self.status = status
        self.detail = detail
        self.violations = violations
        super().__init__(detail)


class SourceUnavailableError(ProblemDetailError):
    def __init__(self, detail: str):
        super().__init__(
            type_uri="https://api.sleepdebt.local/problems/source-unavailable",
            title="Source Unavailable",
            status=503,
            detail=f"Sleep interval source could not be reached: {detail}",
        )


class PersistenceFailureError(ProblemDetailError):
    def __init__(self, detail: str):
        super().__init__(
            type_uri="https://api.sleepdebt.local/problems/persistence-failure",
            title="Persistence Failure",
            status=503,
            detail=f"Store write failed, nothing was committed: {detail}",
        )


class InvalidSettingError(ProblemDetailError):
    def __init__(self, field: str, value: object, constraint: str):
        super().__init__(
            type_uri="https://api.sleepdebt.local/problems/invalid-setting",
            title="Invalid Setting",
            status=422,
            detail=f"Setting '{field}' value {value!r} is invalid: {constraint}",
            violations=[{"field": field, "message": constraint, "constraint": "range"}],
        )


class InvalidWindowError(ProblemDetailError):
    def __init__(self, window_days: int, max_days: int):
        super().__init__(
            type_uri="https://api.sleepdebt.local/problems/invalid-window",
            title="Invalid Window",
            status=400,
            detail=f"Parameter 'window_days' ({window_days}) must be between 1 and {max_days}",
        )


class InvalidCursorError(Exception):
    """Stored sync cursor cannot be decoded or was rejected by the source."""

    def __init__(self, cursor: str | None, reason: str = ""):
        self.cursor = cursor
        self.reason = reason
        super().__init__(f"Invalid sync cursor {cursor!r}: {reason}" if reason else cursor)
