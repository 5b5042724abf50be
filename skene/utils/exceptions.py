class SkeneError(Exception):
    """Base exception for the skene orchestrator."""


class BinaryNotFoundError(SkeneError):
    """No engine binary could be located.  Indicates a missing install."""

    def __init__(self, binary_name: str, candidates: list[str]):
        self.binary_name = binary_name
        self.candidates = candidates
        super().__init__(
            f"{binary_name} binary not found: place it next to the skene "
            f"executable or set SKENE_ENGINE_PATH"
        )


class ProcessStartError(SkeneError):
    def __init__(self, binary_path: str, detail: str):
        self.binary_path = binary_path
        super().__init__(f"Failed to start {binary_path}: {detail}")


class EngineReportedError(SkeneError):
    """The engine emitted an ``error`` event."""

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code
        text = f"{message} ({code})" if code else message
        super().__init__(text)


class EngineExitError(SkeneError):
    def __init__(self, returncode: int, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        msg = f"skene-engine failed: exit status {returncode}"
        if stderr:
            msg = f"{msg}\n{stderr}"
        super().__init__(msg)


class TaskNotFoundError(SkeneError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class InvalidTaskTransitionError(SkeneError):
    def __init__(self, task_id: str, current: str, target: str):
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(
            f"Task '{task_id}' cannot move from {current} to {target}"
        )


class PipelineCancelledError(SkeneError):
    def __init__(self, next_task_id: str | None = None):
        self.next_task_id = next_task_id
        detail = f" before task '{next_task_id}'" if next_task_id else ""
        super().__init__(f"Pipeline cancelled{detail}")


class RunNotFoundError(SkeneError):
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"No run found: {run_id}")
