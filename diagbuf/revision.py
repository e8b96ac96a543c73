"""Revision tag discovery.

The tag identifies the source revision a running program was built from.
Lookup order:
1. A tag already resolved in this process
2. ArchiveTag.txt in the source root (written by a previous lookup or by
   a release script)
3. The version-control command, whose output is then cached to ArchiveTag.txt
4. A sentinel string describing what went wrong
"""

import logging
import subprocess
from pathlib import Path
from typing import Callable, Optional, Union

from diagbuf.config import DEFAULT_TAG_FILE_NAME
from diagbuf.utils.errors import RevisionLookupError

logger = logging.getLogger(__name__)

TAG_NOT_SET = "NotSet"
TAG_SOURCE_NOT_FOUND = "Source path not found"
TAG_GIT_NOT_FOUND = ".git not found"

DEFAULT_COMMAND_TIMEOUT = 30

RevisionSource = Callable[[Path], str]


class GitRevisionSource:
    """Read the current commit hash with ``git log -1``."""

    def __init__(self, git: str = "git", timeout: float = DEFAULT_COMMAND_TIMEOUT):
        self.git = git
        self.timeout = timeout

    def __call__(self, git_dir: Path) -> str:
        command = [self.git, f"--git-dir={git_dir}", "log", "-1", "--format=%H"]
        logger.debug(f"git command {command}")
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise RevisionLookupError(f"Failed to run git: {e}", str(git_dir)) from e

        if result.stderr:
            logger.debug(f"stderr output is: {result.stderr.strip()}")
        if result.returncode != 0:
            raise RevisionLookupError(
                f"git exited with status {result.returncode}", str(git_dir)
            )
        return result.stdout


class RevisionTagResolver:
    """Resolve and cache the revision tag for a program.

    Usage:
        resolver = RevisionTagResolver()
        tag = resolver.resolve(sys.argv[0], "myprogram.pro")
    """

    def __init__(
        self,
        tag_file_name: str = DEFAULT_TAG_FILE_NAME,
        source: Optional[RevisionSource] = None,
        tag: str = TAG_NOT_SET,
    ):
        self.tag_file_name = tag_file_name
        self.source = source or GitRevisionSource()
        self.tag = tag
        self.source_path: Optional[Path] = None

    @property
    def is_set(self) -> bool:
        return bool(self.tag) and self.tag != TAG_NOT_SET

    def resolve(self, executable_path: Union[str, Path], program_name: str) -> str:
        """Determine the revision tag.

        Args:
            executable_path: Path of the running program
            program_name: File that marks the source root (searched for in the
                executable's directory and each of its parents)

        Returns:
            The tag, or one of the TAG_* sentinels
        """
        if self.is_set:
            logger.debug(f"Revision tag already set: {self.tag}")
            return self.tag

        source_path = find_source_root(executable_path, program_name)
        if source_path is None:
            logger.warning("Source path not found.")
            self.tag = TAG_SOURCE_NOT_FOUND
            return self.tag
        self.source_path = source_path
        logger.debug(f"Source path is {source_path}")

        tag_file = source_path / self.tag_file_name
        if tag_file.is_file():
            try:
                with open(tag_file) as f:
                    self.tag = f.readline().rstrip("\r\n")
                logger.info(f"Revision tag from {self.tag_file_name}: {self.tag}")
                return self.tag
            except OSError as e:
                logger.warning(f"Failed to read {tag_file}: {e}")

        git_dir = source_path / ".git"
        if not git_dir.is_dir():
            logger.warning(f"Git archive not found; path is {git_dir}")
            self.tag = TAG_GIT_NOT_FOUND
            return self.tag

        try:
            output = self.source(git_dir)
        except RevisionLookupError as e:
            logger.warning(f"Revision lookup failed: {e}")
            self.tag = TAG_NOT_SET
            return self.tag

        self.tag = output[:-1] if output.endswith("\n") else output
        try:
            with open(tag_file, "w") as f:
                f.write(self.tag)
            logger.debug(f"Wrote revision tag to {self.tag_file_name}")
        except OSError as e:
            logger.warning(f"Failed to cache revision tag to {tag_file}: {e}")

        logger.info(f"Revision tag: {self.tag}")
        return self.tag


def find_source_root(executable_path: Union[str, Path], program_name: str) -> Optional[Path]:
    """Walk up from the executable's directory to the one holding ``program_name``."""
    start = Path(executable_path).resolve().parent
    for candidate in (start, *start.parents):
        if len(str(candidate)) <= 2:
            break
        if (candidate / program_name).exists():
            return candidate
    return None
