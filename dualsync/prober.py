"""Remote reachability probes and the concurrent fetch phase."""
from __future__ import annotations

# ======================= STANDARDS =======================
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
import logging as log

# ======================== LOCALS =========================
from .error_model import AuthError, GitTimeoutError, SyncError
from .state import ExistenceState
from .gitutils import GitClient
from . import telemetry
from . import tables


logger = log.getLogger("dualsync.prober")


@dataclass(frozen=True)
class FetchOutcome:
    remote: str
    ok: bool
    kind: str = "ok"  # ok | timeout | auth | error
    message: str = ""

    def as_dict(self) -> dict[str, object]: return asdict(self)


class RemoteProber:
    def __init__(self, git: GitClient) -> None:
        self.git      = git
        self.settings = git.settings

    def _remote_probe(self, local: bool, remote: str, fallback_url: str
                     ) -> tuple[bool, bool, str]:
        """(configured, reachable, url) for one remote role."""
        # with a local repository only its own remote config counts;
        # without one, the configured URL stands in
        if local:
            url = self.git.remote_url(remote)
            target = remote
        else: url = target = fallback_url
        if not url: return False, False, ""
        try: reachable = self.git.can_reach(target)
        except GitTimeoutError:
            logger.info("probe of %s timed out", remote)
            reachable = False
        except AuthError:
            logger.info("probe of %s refused credentials", remote)
            reachable = False
        return True, reachable, url

    def detect_existence(self) -> ExistenceState:
        local = self.git.local_exists()
        core_name = self.settings.core_remote
        hub_name  = self.settings.hub_remote
        core, core_ok, core_url = self._remote_probe(
            local, core_name, self.settings.core_url)
        hub, hub_ok, hub_url = self._remote_probe(
            local, hub_name, self.settings.hub_url)
        return ExistenceState(
            id=tables.existence_id(local, core, hub),
            local_exists=local,
            core_exists=core,
            hub_exists=hub,
            core_reachable=core_ok,
            hub_reachable=hub_ok,
            core_remote=core_name,
            hub_remote=hub_name,
            core_url=core_url,
            hub_url=hub_url,
        )

    def fetchable(self, existence: ExistenceState) -> list[str]:
        remotes = []
        if existence.core_exists and existence.core_reachable:
            remotes.append(existence.core_remote)
        if existence.hub_exists and existence.hub_reachable:
            remotes.append(existence.hub_remote)
        return remotes

    def _fetch_one(self, remote: str) -> FetchOutcome:
        try:
            self.git.fetch(remote)
            outcome = FetchOutcome(remote, True)
        except GitTimeoutError as e:
            outcome = FetchOutcome(remote, False, "timeout", str(e))
        except AuthError as e:
            outcome = FetchOutcome(remote, False, "auth", str(e))
        except SyncError as e:
            outcome = FetchOutcome(remote, False, "error", str(e))
        telemetry.emit_event("fetch_result", "fetch",
                             outcome.as_dict())
        if not outcome.ok:
            logger.warning("fetch %s failed (%s): %s", remote,
                           outcome.kind, outcome.message)
        return outcome

    def start_fetch(self, pool: ThreadPoolExecutor,
                    existence: ExistenceState
                   ) -> dict[Future[FetchOutcome], str]:
        """Submit one fetch per reachable remote to `pool`."""
        return {pool.submit(self._fetch_one, remote): remote
                for remote in self.fetchable(existence)}

    @staticmethod
    def join(futures: dict[Future[FetchOutcome], str]
            ) -> dict[str, FetchOutcome]:
        outcomes: dict[str, FetchOutcome] = {}
        for fut in as_completed(futures):
            remote = futures[fut]
            try: outcomes[remote] = fut.result()
            # _fetch_one already maps SyncError; anything else is a bug
            # surfaced as a failed fetch rather than a crash
            except Exception as e:
                logger.exception("fetch worker for %s crashed", remote)
                outcomes[remote] = FetchOutcome(remote, False, "error",
                                                str(e))
        return outcomes

    def fetch_remotes(self, existence: ExistenceState
                     ) -> dict[str, FetchOutcome]:
        """Fetch every reachable remote concurrently and wait."""
        remotes = self.fetchable(existence)
        if not remotes: return {}
        with ThreadPoolExecutor(max_workers=len(remotes),
                                thread_name_prefix="dsync-fetch") as pool:
            return self.join(self.start_fetch(pool, existence))

