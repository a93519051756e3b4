"""Exceptions raised by the orchestration layer."""


class OrchestrationException(Exception):
    """Base exception for orchestration errors."""

    pass


class TmuxUnavailableError(OrchestrationException):
    """tmux binary is not installed."""

    def __init__(self) -> None:
        super().__init__(
            "tmux is not installed. Please install tmux to use orchestration features."
        )


class TmuxCommandError(OrchestrationException):
    """A tmux session or window could not be found or manipulated."""

    pass


class DeploymentError(OrchestrationException):
    """Deploying the team failed; nothing is left running."""

    pass


class CommunicationBlockedError(OrchestrationException):
    """A message was rejected by the active communication topology."""

    def __init__(self, from_agent: str, to_agent: str, model: str) -> None:
        self.from_agent = from_agent
        self.to_agent = to_agent
        self.model = model
        super().__init__(
            f"Communication blocked: {from_agent} cannot directly communicate "
            f"with {to_agent} in {model} model"
        )


class HierarchyCycleError(OrchestrationException):
    """Registering a supervisor would create a reporting cycle."""

    pass


class MessageNotFoundError(OrchestrationException):
    """No message with the given id is in the history."""

    pass


class GitCommandError(OrchestrationException):
    """A git command exited non-zero."""

    def __init__(self, args: list[str], returncode: int, output: str) -> None:
        self.args_list = args
        self.returncode = returncode
        self.output = output
        super().__init__(f"git {' '.join(args)} failed ({returncode}): {output.strip()}")
