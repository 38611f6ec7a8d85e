from enum import Enum


class ProjectType(str, Enum):
    LOCAL = "local"
    GITHUB = "github"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# No field of a run in one of these states changes again
TERMINAL_STATUSES = (RunStatus.COMPLETED.value, RunStatus.FAILED.value)


class TriggerType(str, Enum):
    MANUAL = "manual"
    PUSH = "push"
    PULL_REQUEST = "pull_request"


class ScanType(str, Enum):
    FULL = "full"
    SAST = "sast"
    DAST = "dast"
    SCA = "sca"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Order used when listing findings; unknown severities sort last
SEVERITY_ORDER = ["CRITICAL", "HIGH", "MEDIUM", "LOW"]
# Stored for findings the worker reported without a severity
DEFAULT_SEVERITY = "LOW"

DEFAULT_BRANCH = "main"
# main <-> master, the only branch-name fallback the sync engine tries
BRANCH_FALLBACKS = {"main": "master", "master": "main"}

DEFAULT_LANGUAGES = ["python"]
