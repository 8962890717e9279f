"""Constants used in the project."""

from enum import Enum


class ErrorCodes(Enum):
    """Stable error codes attached to resolver exceptions.

    Args:
        Enum (string): Error codes surfaced to the package manager.
    """

    TOOL_UNAVAILABLE = "ENOHG"
    NO_MATCHING_TARGET = "ENORESTARGET"
    COMMAND_FAILED = "ECMDERR"
    CLEANUP_FAILED = "ECLEANUP"
    CONFIG_INVALID = "ECONFIG"


class RefKind(Enum):
    """Query kinds held by the ref cache.

    Args:
        Enum (string): One independently bounded store per kind.
    """

    REFS = "refs"
    TAGS = "tags"
    BRANCHES = "branches"
    VERSIONS = "versions"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    HG_EXECUTABLE = "hg"
    HG_METADATA_DIR = ".hg"
    HG_PROTOCOL_PREFIX = "hg+"
    HG_NAME_SUFFIX = ".hg"
    HG_ENV = {"HGPLAIN": "1"}
    DEFAULT_BRANCH = "default"
    DEFAULT_TARGET = "*"

    CACHE_MAX_ENTRIES = 50
    CACHE_TTL_SEC = 300

    PROGRESS_DELAY_SEC = 8.0
    PROGRESS_INTERVAL_SEC = 1.0

    # Mercurial shallow clones come from the remotefilelog extension
    SHALLOW_CLONE_ARGS = ["--config", "extensions.remotefilelog=", "--shallow"]
    SHALLOW_UNSUPPORTED_PATTERN = r"(shallow|remotefilelog|option --shallow not recognized)"
    REF_NOT_FOUND_PATTERN = r"(branch|revision) .+? not found"
    VALID_REPO_PATTERN = r"^[0-9a-f]{12,40}\+?(\s|$)"
    PROGRESS_LINE_PATTERN = r"\d{1,3}%"

    META_FILENAME = ".hgresolve.json"
    MANIFEST_FILENAME = "package.json"
    TMP_DIR_NAME = "hgresolve"
    RELEASE_COMMIT_CHARS = 10

    ENV_CONFIG = "HGRESOLVE_CONFIG"
    ENV_LOG_LEVEL = "HGRESOLVE_LOG_LEVEL"
    ENV_TMP_DIR = "HGRESOLVE_TMP_DIR"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
