"""Pure stderr classification for git failures."""
from dataclasses import asdict, dataclass
from typing import Callable
import re

from .error_model import error_policy_for


@dataclass(frozen=True)
class ErrorClassification:
    """Stable classification for git stderr matching."""
    code: str
    severity: str
    kind: str

    def as_dict(self) -> dict[str, str]: return asdict(self)


@dataclass(frozen=True)
class ClassificationRule:
    """Declarative stderr classification rule."""
    code: str
    kind: str
    matcher: Callable[[str], bool]


def _match_any(needles: tuple[str, ...]) -> Callable[[str], bool]:
    """Return predicate that matches if any needle exists in stderr."""
    def _matcher(stderr: str) -> bool:
        return any(needle in stderr for needle in needles)
    return _matcher


AUTH_ERROR_NEEDLES: tuple[str, ...] = (
    "authentication failed",
    "permission denied (publickey)",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
    "host key verification failed",
    "invalid username or password",
    "access denied",
    "http basic: access denied",
)

NETWORK_TIMEOUT_NEEDLES: tuple[str, ...] = (
    "operation timed out",
    "connection timed out",
    "timed out",
)

NETWORK_TLS_NEEDLES: tuple[str, ...] = (
    "ssl certificate problem",
    "server certificate verification failed",
    "gnutls_handshake()",
    "ssl connect error",
)

NETWORK_ERROR_NEEDLES: tuple[str, ...] = (
    "no address associated with hostname",
    "could not resolve host",
    "connection refused",
    "failed to connect",
    "network is unreachable",
)

NOT_FOUND_NEEDLES: tuple[str, ...] = (
    "repository not found",
    "does not appear to be a git repository",
    "no such remote",
    "not a git repository",
)

NON_FAST_FORWARD_NEEDLES: tuple[str, ...] = (
    "non-fast-forward",
    "fetch first",
    "tip of your current branch is behind",
)

PROTECTED_BRANCH_NEEDLES: tuple[str, ...] = (
    "protected branch",
    "pre-receive hook declined",
)

LOCK_CONTENTION_NEEDLES: tuple[str, ...] = (
    "another git process seems to be running",
    "index.lock",
    "shallow.lock",
)

REF_CONFLICT_NEEDLES: tuple[str, ...] = (
    "cannot lock ref",
    "failed to update ref",
)

INVALID_OBJECT_NEEDLES: tuple[str, ...] = (
    "invalid object",
    "bad object",
    "missing blob",
    "missing tree",
    "object corrupt",
    "has null sha1",
)

# Order matters: the first matching rule wins.
CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule("DSY_NET_AUTH_FAIL", "auth",
                       _match_any(AUTH_ERROR_NEEDLES)),
    ClassificationRule("DSY_NET_TLS_FAIL", "network",
                       _match_any(NETWORK_TLS_NEEDLES)),
    ClassificationRule("DSY_NET_TIMEOUT", "timeout",
                       _match_any(NETWORK_TIMEOUT_NEEDLES)),
    ClassificationRule("DSY_NET_CONNECTIVITY", "network",
                       _match_any(NETWORK_ERROR_NEEDLES)),
    ClassificationRule("DSY_GIT_NOT_FOUND", "not_found",
                       _match_any(NOT_FOUND_NEEDLES)),
    ClassificationRule("DSY_GIT_PROTECTED_BRANCH", "rejected",
                       _match_any(PROTECTED_BRANCH_NEEDLES)),
    ClassificationRule("DSY_GIT_NON_FAST_FORWARD", "rejected",
                       _match_any(NON_FAST_FORWARD_NEEDLES)),
    ClassificationRule("DSY_GIT_LOCK_CONTENTION", "lock",
                       _match_any(LOCK_CONTENTION_NEEDLES)),
    ClassificationRule("DSY_GIT_REF_CONFLICT", "ref",
                       _match_any(REF_CONFLICT_NEEDLES)),
    ClassificationRule("DSY_GIT_INVALID_OBJECT", "corruption",
                       _match_any(INVALID_OBJECT_NEEDLES)),
    ClassificationRule("DSY_GIT_DUBIOUS_OWNERSHIP", "config",
                       _match_any(("dubious ownership",))),
    ClassificationRule("DSY_NET_REMOTE_UNREADABLE", "network",
                       _match_any(("could not read from remote",))),
)

_URL_PATTERN         = re.compile(r"https?://[^\s'\"`]+")
_HTTPS_TOKEN_PATTERN = re.compile(r"(https://)[^/\s@]+(@)")


def normalize_stderr(stderr: str) -> str:
    """Normalize stderr for resilient, deterministic classification."""
    text = stderr.strip().lower()
    if not text: return ""
    text = text\
           .replace("`", "'")\
           .replace("’", "'")\
           .replace('"', "'")
    text = _HTTPS_TOKEN_PATTERN.sub(r"\1<token>\2", text)
    text = _URL_PATTERN.sub("<url>", text)
    text = re.sub(r"\s+", " ", text)
    return text


def _classify_code(code: str, kind: str) -> ErrorClassification:
    policy = error_policy_for(code)
    return ErrorClassification(code=code, severity=policy["severity"],
                               kind=kind)


def classify(stderr: str) -> ErrorClassification:
    """Classify git stderr into stable code/severity/kind."""
    if not stderr or not stderr.strip():
        return _classify_code("DSY_GIT_EMPTY_STDERR", "unknown")
    lowered = normalize_stderr(stderr)
    for rule in CLASSIFICATION_RULES:
        if rule.matcher(lowered):
            return _classify_code(rule.code, rule.kind)
    return _classify_code("DSY_GIT_UNCLASSIFIED", "unknown")


def is_auth_failure(stderr: str) -> bool:
    return classify(stderr).kind == "auth"
