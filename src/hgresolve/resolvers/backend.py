"""Base class for version-control backends."""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ..common.cmd import CommandResult, ProgressCallback


class VcsBackend(ABC):
    """Tool-specific operations the resolution flow depends on.

    Each method runs one invocation of the external tool. Parsing of ref
    listings, caching and retries live above this layer.
    """

    #: Directory holding version-control metadata inside a working copy
    metadata_dir: str = ""

    #: Regex matched against error details of a rejected shallow clone
    shallow_unsupported_pattern: str = ""

    #: Regex matched against clone output when a ref could not be found by name
    ref_not_found_pattern: str = ""

    @property
    @abstractmethod
    def executable(self) -> str:
        """Name or path of the tool."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the tool can be found."""

    @abstractmethod
    async def identify(self, work_dir: str) -> str:
        """Identify the working copy; raises ``CommandError`` if it is not one."""

    @abstractmethod
    def is_valid_identity(self, output: str) -> bool:
        """Whether ``identify`` output describes a usable repository."""

    @abstractmethod
    async def clone(
        self, source: str, work_dir: str, on_progress: Optional[ProgressCallback] = None
    ) -> CommandResult:
        """Full clone of ``source`` into ``work_dir``."""

    @abstractmethod
    async def clone_ref(
        self, source: str, work_dir: str, ref: str, shallow_args: Sequence[str] = ()
    ) -> CommandResult:
        """Clone only ``ref`` of ``source``, adding ``shallow_args`` when given."""

    @abstractmethod
    async def checkout(self, work_dir: str, ref: str) -> CommandResult:
        """Update the working copy to ``ref``."""

    @abstractmethod
    async def list_tags(self, location: str) -> List[str]:
        """Raw tag listing lines."""

    @abstractmethod
    async def list_branches(self, location: str) -> List[str]:
        """Raw branch listing lines."""
