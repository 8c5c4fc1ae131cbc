"""Terminal output and log wiring, kept apart from the core."""
# ======================= STANDARDS ========================
from dataclasses import dataclass
from pathlib import Path
import logging as log
import os

# ===================== THIRD-PARTIES ======================
from tuikit.textools import wrap_text
from tuikit.textools import transmit as _transmit, pathit

# ======================== LOCALS ==========================
from ._constants import (APP, BAD, DSY, GOOD, HOLD, I, INFO,
                         LOG_DIRNAME, PROMPT, SPEED)
from . import telemetry


logger = log.getLogger("dualsync")
logger.setLevel(log.DEBUG)


def configure_logger(log_dir: Path) -> None:
    """Attach the debug file handler and event stream once."""
    telemetry.init_event_stream(Path(log_dir))
    if any(isinstance(h, log.FileHandler) for h in logger.handlers):
        return
    os.makedirs(log_dir, exist_ok=True)
    file_handler = log.FileHandler(str(Path(log_dir) / "debug.log"))
    fmt          = log.Formatter("%(asctime)s - %(name)s - "
                 + "%(levelname)s - %(message)s")
    file_handler.setFormatter(fmt)
    logger.addHandler(file_handler)


def get_log_dir(path: str, override: str = "") -> Path:
    if override: log_dir = Path(override).expanduser()
    else:
        root = Path(path)
        if not root.is_dir(): root = root.parent
        log_dir = root / ".git" / LOG_DIRNAME \
                  if (root / ".git").is_dir() else root / LOG_DIRNAME
    os.makedirs(log_dir, exist_ok=True)
    return log_dir


def wrap(text: str) -> str:
    return wrap_text(text, I, inline=True, order=APP)


def transmit(*text: str, fg: str = PROMPT, quiet: bool = False,
             prfx: bool = True, plain: bool = False) -> None:
    if quiet: return
    msg = " ".join(map(str, text))
    if plain:
        print(f"{APP} {msg}" if prfx else msg)
        return
    if prfx: print(DSY, end="")
    _transmit(msg, speed=SPEED, hold=HOLD, hue=fg)


@dataclass
class Output:
    quiet: bool = False
    plain: bool = False

    def success(self, msg: str) -> None:
        transmit(wrap(msg), fg=GOOD, quiet=self.quiet, plain=self.plain)

    def info(self, msg: str, prefix: bool = True) -> None:
        transmit(msg, fg=INFO, quiet=self.quiet, prfx=prefix,
                 plain=self.plain)

    def warn(self, msg: str, fit: bool = True) -> None:
        if fit: msg = wrap(msg)
        transmit(msg, fg=BAD, plain=self.plain)

    def raw(self, *args: object, **kwargs: object) -> None:
        if not self.quiet: print(*args, **kwargs)  # type: ignore[call-overload]


__all__ = ["Output", "configure_logger", "get_log_dir", "pathit",
           "transmit", "wrap"]
