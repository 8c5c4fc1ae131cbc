"""
Remote platform collaborator.

Each implementation declares one fixed capability set; asking
for anything outside it raises `UnsupportedError` instead of
being discovered by probing. Callers go through `query`, which
turns every failure into None ("unknown").
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from dataclasses import dataclass, field
from typing import Protocol
import logging as log
import os

# ======================== LOCALS =========================
from .error_model import UnsupportedError


logger = log.getLogger("dualsync.platform")

IS_BRANCH_PROTECTED = "is_branch_protected"
GET_DEFAULT_BRANCH  = "get_default_branch"
CAN_ADMIN           = "can_admin"

ALL_CAPABILITIES = frozenset({IS_BRANCH_PROTECTED, GET_DEFAULT_BRANCH,
                              CAN_ADMIN})


class CredentialProvider(Protocol):
    def bearer_token(self) -> str: ...


class EnvCredentialProvider:
    """Reads the hub API credential from an environment variable."""

    def __init__(self, env_key: str = "DUALSYNC_HUB_TOKEN") -> None:
        self.env_key = env_key

    def bearer_token(self) -> str:
        return os.environ.get(self.env_key, "").strip()


class RemotePlatform(Protocol):
    capabilities: frozenset[str]

    def is_branch_protected(self, branch: str) -> bool: ...
    def get_default_branch(self) -> str: ...
    def can_admin(self) -> bool: ...


@dataclass(frozen=True)
class PlatformConfig:
    default_branch: str = ""
    protected_branches: tuple[str, ...] = ()
    admin: bool | None = None


class NullPlatform:
    """No platform attached: every capability is unsupported."""
    capabilities: frozenset[str] = frozenset()

    def is_branch_protected(self, branch: str) -> bool:
        raise UnsupportedError(f"{IS_BRANCH_PROTECTED} unsupported")

    def get_default_branch(self) -> str:
        raise UnsupportedError(f"{GET_DEFAULT_BRANCH} unsupported")

    def can_admin(self) -> bool:
        raise UnsupportedError(f"{CAN_ADMIN} unsupported")


@dataclass
class StaticPlatform:
    """Answers from explicit configuration instead of an API."""
    config: PlatformConfig
    capabilities: frozenset[str] = field(init=False)

    def __post_init__(self) -> None:
        caps = {IS_BRANCH_PROTECTED}
        if self.config.default_branch: caps.add(GET_DEFAULT_BRANCH)
        if self.config.admin is not None: caps.add(CAN_ADMIN)
        self.capabilities = frozenset(caps)

    def is_branch_protected(self, branch: str) -> bool:
        return branch in self.config.protected_branches

    def get_default_branch(self) -> str:
        if GET_DEFAULT_BRANCH not in self.capabilities:
            raise UnsupportedError("no default branch configured")
        return self.config.default_branch

    def can_admin(self) -> bool:
        if self.config.admin is None:
            raise UnsupportedError("admin rights not configured")
        return self.config.admin


def query(platform: RemotePlatform | None, capability: str,
          *args: object) -> object | None:
    """Call `capability` on `platform`; None means unknown."""
    if platform is None: return None
    if capability not in ALL_CAPABILITIES:
        raise ValueError(f"unknown platform capability: {capability}")
    if capability not in platform.capabilities: return None
    try: return getattr(platform, capability)(*args)
    # a platform failure degrades to "unknown", never to a crash
    except Exception as e:
        logger.info("platform %s failed: %s", capability, e)
        return None
