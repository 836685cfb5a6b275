class BatchValidationError(ValueError):
    """Raised when a batch request is rejected before any task is created."""


class TaskNotFoundError(Exception):
    """Raised when a task identifier does not exist on the task board."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id '{task_id}' was not found.")
        self.task_id = task_id


class InvalidTransitionError(Exception):
    """Raised when a task is asked to move backwards or out of order."""

    def __init__(self, task_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Task '{task_id}' cannot move from '{current}' to '{requested}'."
        )
        self.task_id = task_id
        self.current = current
        self.requested = requested


class InvalidTaskOperationError(Exception):
    """Raised when retry/regenerate is requested for a task in the wrong state."""

    def __init__(self, task_id: str, operation: str, state: str) -> None:
        super().__init__(f"Cannot {operation} task '{task_id}' in state '{state}'.")
        self.task_id = task_id
        self.operation = operation
        self.state = state


class ProviderError(Exception):
    """Raised by a generation backend when the provider call fails."""


class UnknownProviderError(Exception):
    """Raised when no backend is registered for a provider tag."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"No generation backend registered for provider '{provider}'.")
        self.provider = provider


class MaskNotFoundError(Exception):
    def __init__(self, mask_id: str) -> None:
        super().__init__(f"Mask with id '{mask_id}' was not found.")
        self.mask_id = mask_id


class DefinitionNotFoundError(Exception):
    def __init__(self, definition_id: str) -> None:
        super().__init__(f"Scene definition with id '{definition_id}' was not found.")
        self.definition_id = definition_id


class HistoryNotFoundError(Exception):
    def __init__(self, history_id: str) -> None:
        super().__init__(f"History entry with id '{history_id}' was not found.")
        self.history_id = history_id


class HistoryAccessDeniedError(Exception):
    """Raised when a user attempts to touch a history entry they do not own."""

    def __init__(self, history_id: str, user_id: str) -> None:
        super().__init__(f"User '{user_id}' has no access to history entry '{history_id}'.")
        self.history_id = history_id
        self.user_id = user_id


class MaskValidationError(ValueError):
    """Raised when a mask or definition is missing its name or prompt."""
