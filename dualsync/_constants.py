"""Constants across dualsync."""


from tuikit.textools import style_text as color


APP            = "[dualsync]"
DSY            = color(f"{APP} ", "magenta")
GOOD           = "green"
BAD            = "red"
PROMPT         = "yellow"
INFO           = "cyan"
SPEED          = 0.0075
HOLD           = 0.01
I              = 11

# remote roles
CORE           = "core"
HUB            = "hub"
DEFAULT_CORE   = "origin"
DEFAULT_HUB    = "github"
FALLBACK_BRANCHES = ("main", "master")

# deadlines (seconds)
FETCH_TIMEOUT     = 30.0
OPERATION_TIMEOUT = 10.0
QUICK_TIMEOUT     = 5.0

LARGE_OBJECT_MB   = 10
MAX_BRANCHES      = 100
LOG_DIRNAME       = "dsynclog"
GITLINK_MODE      = "160000"
