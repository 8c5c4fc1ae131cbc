"""
Typed failures and the machine-readable error envelope.

Every exception raised by the core derives from `SyncError`
and carries a stable code from `ERROR_CODE_POLICY`.
"""
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any


ERROR_CODE_POLICY: dict[str, dict[str, Any]] = {
    "DSY_INT_UNHANDLED_EXCEPTION": {
        "severity": "error",
        "category": "internal",
        "retryable": False,
    },
    "DSY_INT_KEYBOARD_INTERRUPT": {
        "severity": "warn",
        "category": "internal",
        "retryable": False,
    },
    "DSY_VAL_PRECONDITION": {
        "severity": "error",
        "category": "validation",
        "retryable": False,
    },
    "DSY_VAL_DIRTY_WORKTREE": {
        "severity": "error",
        "category": "validation",
        "retryable": False,
    },
    "DSY_VAL_NOT_FAST_FORWARD": {
        "severity": "error",
        "category": "validation",
        "retryable": False,
    },
    "DSY_VAL_REMOTE_UNAVAILABLE": {
        "severity": "error",
        "category": "validation",
        "retryable": False,
    },
    "DSY_STATE_UNKNOWN": {
        "severity": "warn",
        "category": "state",
        "retryable": False,
    },
    "DSY_OP_ROLLBACK_REFUSED": {
        "severity": "warn",
        "category": "operation",
        "retryable": False,
    },
    "DSY_OP_COMPOSITE_FAIL": {
        "severity": "error",
        "category": "operation",
        "retryable": False,
    },
    "DSY_OP_PARTIAL_PUSH": {
        "severity": "warn",
        "category": "operation",
        "retryable": True,
    },
    "DSY_PLATFORM_UNSUPPORTED": {
        "severity": "info",
        "category": "platform",
        "retryable": False,
    },
    "DSY_GIT_EXEC_FAIL": {
        "severity": "error",
        "category": "git",
        "retryable": False,
    },
    "DSY_GIT_NOT_FOUND": {
        "severity": "error",
        "category": "git",
        "retryable": False,
    },
    "DSY_GIT_NON_FAST_FORWARD": {
        "severity": "error",
        "category": "git",
        "retryable": False,
    },
    "DSY_GIT_LOCK_CONTENTION": {
        "severity": "error",
        "category": "git",
        "retryable": True,
    },
    "DSY_GIT_REF_CONFLICT": {
        "severity": "error",
        "category": "git",
        "retryable": False,
    },
    "DSY_GIT_INVALID_OBJECT": {
        "severity": "error",
        "category": "git",
        "retryable": False,
    },
    "DSY_GIT_PROTECTED_BRANCH": {
        "severity": "error",
        "category": "git",
        "retryable": False,
    },
    "DSY_GIT_DUBIOUS_OWNERSHIP": {
        "severity": "warn",
        "category": "git",
        "retryable": False,
    },
    "DSY_GIT_UNCLASSIFIED": {
        "severity": "warn",
        "category": "git",
        "retryable": False,
    },
    "DSY_GIT_EMPTY_STDERR": {
        "severity": "warn",
        "category": "git",
        "retryable": False,
    },
    "DSY_NET_AUTH_FAIL": {
        "severity": "error",
        "category": "network",
        "retryable": False,
    },
    "DSY_NET_TIMEOUT": {
        "severity": "error",
        "category": "network",
        "retryable": True,
    },
    "DSY_NET_CONNECTIVITY": {
        "severity": "error",
        "category": "network",
        "retryable": True,
    },
    "DSY_NET_TLS_FAIL": {
        "severity": "error",
        "category": "network",
        "retryable": False,
    },
    "DSY_NET_REMOTE_UNREADABLE": {
        "severity": "error",
        "category": "network",
        "retryable": True,
    },
}


def canonical_error_code(code: str) -> str:
    """Normalize a code token before policy lookup."""
    return code.strip().upper()


def error_policy_for(
    code: str,
    fallback_severity: str = "error",
    fallback_category: str = "git",
) -> dict[str, Any]:
    """Resolve canonical severity/category/retryable for a stable code."""
    code = canonical_error_code(code)
    policy = ERROR_CODE_POLICY.get(code, {})
    severity = str(policy.get("severity", fallback_severity)).strip()
    category = str(policy.get("category", fallback_category)).strip()
    return {
        "severity": severity or fallback_severity,
        "category": category or fallback_category,
        "retryable": bool(policy.get("retryable", False)),
    }


class SyncError(Exception):
    """Base failure with a stable code and an operator hint."""
    default_code = "DSY_INT_UNHANDLED_EXCEPTION"

    def __init__(self, message: str, code: str = "",
                 hint: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.code    = canonical_error_code(code or self.default_code)
        self.hint    = hint
        self.stderr  = stderr

    @property
    def retryable(self) -> bool:
        return bool(error_policy_for(self.code)["retryable"])

    def __str__(self) -> str:
        if self.hint: return f"{self.message} (hint: {self.hint})"
        return self.message


class ValidationError(SyncError):
    """Precondition unmet; never retried."""
    default_code = "DSY_VAL_PRECONDITION"


class GitTimeoutError(SyncError, TimeoutError):
    """Deadline exceeded; the child process was terminated."""
    default_code = "DSY_NET_TIMEOUT"


class AuthError(SyncError):
    """Credential rejected or an interactive prompt was required."""
    default_code = "DSY_NET_AUTH_FAIL"


class UnknownStateError(ValidationError):
    """The snapshot does not classify the state the step depends on."""
    default_code = "DSY_STATE_UNKNOWN"


class ExecError(SyncError):
    """git could not be launched or exited non-zero."""
    default_code = "DSY_GIT_EXEC_FAIL"

    def __init__(self, message: str, code: str = "",
                 hint: str = "", stderr: str = "",
                 exit_code: int | None = None) -> None:
        super().__init__(message, code=code, hint=hint,
                         stderr=stderr)
        self.exit_code = exit_code


class RollbackRefused(SyncError):
    default_code = "DSY_OP_ROLLBACK_REFUSED"


class UnsupportedError(SyncError):
    """Collaborator does not offer the requested capability."""
    default_code = "DSY_PLATFORM_UNSUPPORTED"


class CompositeError(SyncError):
    """
    One or more steps of a composite operation failed.

    `applied` lists the steps that completed, `failures` the
    (step, error) pairs. `partial` is True when at least one
    step succeeded alongside a failure.
    """
    default_code = "DSY_OP_COMPOSITE_FAIL"

    def __init__(self, message: str, applied: tuple = (),
                 failures: tuple = (), code: str = "") -> None:
        super().__init__(message, code=code)
        self.applied  = tuple(applied)
        self.failures = tuple(failures)

    @property
    def partial(self) -> bool:
        return bool(self.applied) and bool(self.failures)


@dataclass(frozen=True)
class ErrorEnvelope:
    code: str
    severity: str
    category: str
    message: str
    operation: str
    hint: str
    stderr_excerpt: str
    retryable: bool
    context: dict[str, object]

    def as_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "severity": self.severity,
            "category": self.category,
            "message": self.message,
            "operation": self.operation,
            "hint": self.hint,
            "stderr_excerpt": self.stderr_excerpt,
            "retryable": self.retryable,
            "context": self.context,
        }

    def with_runtime_schema(self) -> dict[str, object]:
        payload = self.as_dict()
        payload["schema"] = "dualsync.error_envelope.v1"
        payload["schema_version"] = 1
        payload["generated_at"] = datetime.now(timezone.utc).isoformat(
            timespec="seconds"
        ).replace("+00:00", "Z")
        return payload


def build_error_envelope(
    error: BaseException,
    operation: str,
    context: dict[str, object],
) -> ErrorEnvelope:
    """Construct a typed error envelope from any exception."""
    if isinstance(error, SyncError):
        code   = error.code
        hint   = error.hint
        stderr = error.stderr
    elif isinstance(error, KeyboardInterrupt):
        code, hint, stderr = "DSY_INT_KEYBOARD_INTERRUPT", "", ""
    else:
        code   = "DSY_INT_UNHANDLED_EXCEPTION"
        hint   = "Rerun with --debug for a traceback."
        stderr = ""
    policy = error_policy_for(code, fallback_category="internal")
    return ErrorEnvelope(
        code=code,
        severity=policy["severity"],
        category=policy["category"],
        message=str(error).strip() or type(error).__name__,
        operation=operation,
        hint=hint,
        stderr_excerpt=stderr.strip()[:400],
        retryable=policy["retryable"],
        context=context,
    )
