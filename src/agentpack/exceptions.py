"""agentpack exception hierarchy.

All public exceptions inherit from AgentPackError, giving callers a single
base class to catch when they want to handle any agentpack-specific failure
without swallowing unrelated errors (``OSError``, ``httpx.HTTPError``).
"""


class AgentPackError(Exception):
    """Base exception for all agentpack errors."""


class NotFoundError(AgentPackError):
    """Raised when a declared package cannot be located.

    Covers missing local paths, git subdirectories that do not exist in
    the cloned tree, and registry packages with no satisfying version.
    """


class ValidationError(AgentPackError):
    """Raised when a declaration, manifest, flow or config is malformed.

    Covers unparseable manifests, declarations without a name or source,
    unknown target variables and targets escaping the workspace.
    """


class GitCommandError(AgentPackError):
    """Raised when a git subprocess exits with a non-zero status.

    Attributes:
        args_: The git arguments that were run.
        stderr: Captured standard error of the failed command.
    """

    def __init__(self, message: str, args_: list[str] | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.args_ = list(args_ or [])
        self.stderr = stderr


class RegistryError(AgentPackError):
    """Raised when registry metadata is unusable.

    Covers responses without a version list and missing download hooks.
    """


class WorkspaceIndexError(AgentPackError):
    """Raised when the workspace index file is corrupted or unreadable."""
