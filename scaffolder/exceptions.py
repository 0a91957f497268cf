#  Project Scaffolder - Custom Exceptions
#
#  Typed exception hierarchy so routes can map business errors to HTTP
#  status codes without pattern-matching on message strings.
#
#  Depends on: (none)
#  Used by:    llm/*, deploy/*, services/*, routes/*, app.py

class ScaffolderError(Exception):
    """Base exception for all scaffolder business logic errors."""


class NotFoundError(ScaffolderError):
    """Resource (project, user, generation) does not exist."""


class ForbiddenError(ScaffolderError):
    """Caller is not allowed to touch the resource."""


class InvalidStateError(ScaffolderError):
    """Operation not allowed in the current resource state."""


class InvalidTransitionError(InvalidStateError):
    """A status change is not in the transition table."""

    def __init__(self, kind: str, current: str, target: str):
        self.kind = kind
        self.current = current
        self.target = target
        label = f"{kind} " if kind else ""
        super().__init__(f"Invalid {label}status transition from {current} to {target}")


class ConcurrentModificationError(InvalidStateError):
    """The record changed status under us (another request won the race)."""


class ProviderNotConfiguredError(ScaffolderError):
    """Provider credentials are missing from the environment."""


class UnknownProviderError(ScaffolderError):
    """Provider name is not one of the known providers."""


class CodeParseError(ScaffolderError):
    """The LLM response couldn't be parsed into a file list."""


# ---------------------------------------------------------------------------
# Upstream (remote service) failures
# ---------------------------------------------------------------------------

class UpstreamError(ScaffolderError):
    """A remote service (LLM, source host, deploy target) failed."""


class LLMError(UpstreamError):
    """The LLM provider call failed."""


class GitHubError(UpstreamError):
    """GitHub REST API returned an error."""


class GitError(UpstreamError):
    """A local git command failed."""


class VercelError(UpstreamError):
    """Vercel REST API returned an error."""


class DeploymentStateError(UpstreamError):
    """The deploy target reported a terminal failure state."""

    def __init__(self, state: str):
        self.state = state
        super().__init__(f"Deployment failed with state: {state}")


class DeploymentTimeoutError(UpstreamError):
    """The deployment did not become ready before the deadline."""


class DeploymentPipelineError(UpstreamError):
    """The repository/deploy pipeline reported failure.

    Carries the PipelineResult so callers can surface the partial
    repo URL alongside the error.
    """

    def __init__(self, message: str, result=None):
        self.result = result
        super().__init__(message)
