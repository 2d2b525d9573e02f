"""Exception taxonomy for the orchestration engine."""


class RunnerError(Exception):
    """Base class for all engine errors."""


class RunNotFound(RunnerError):
    def __init__(self, run_id: str):
        super().__init__(f"Test run {run_id} does not exist")
        self.run_id = run_id


class InvalidSpec(RunnerError):
    """The submitted test plan could not be parsed for a name."""


class ProcessSpawnError(RunnerError):
    """The external test executor could not be started."""


class ArchivalError(RunnerError):
    """Copying a working directory into the permanent root failed."""


class MetadataNotFound(RunnerError):
    pass


class CorruptMetadata(RunnerError):
    pass


class InvalidTransition(RunnerError):
    pass


class OutputNotFound(RunNotFound):
    def __init__(self, run_id: str):
        RunnerError.__init__(self, f"No output captured for test run {run_id}")
        self.run_id = run_id
