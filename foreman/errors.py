class ForemanError(Exception):
    """Base class for failures raised while driving an instruction."""


class TaskInProgressError(ForemanError):
    def __init__(self, description: str = ""):
        self.description = description
        super().__init__("A task is already in progress. Please wait for it to complete.")


class AgentStartError(ForemanError):
    """The agent process or API client could not be started."""


class AgentExitError(ForemanError):
    def __init__(self, agent: str, exit_code: int):
        self.agent = agent
        self.exit_code = exit_code
        super().__init__(f"{agent} process exited with code {exit_code}")
