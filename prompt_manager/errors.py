"""
Prompt Manager Errors
Typed failures returned by the version service and diff resolver
"""


class PromptManagerError(Exception):
    """Base class for every expected failure of a prompt operation."""

    code = "prompt_manager_error"
    retryable = False


class InvalidInput(PromptManagerError):
    """Raised when a required field is empty or a value is out of range."""

    code = "invalid_input"


class NoFieldsToUpdate(InvalidInput):
    """Raised when an update carries no fields at all."""

    code = "no_fields_to_update"


class NotFound(PromptManagerError):
    code = "not_found"


class PromptNotFound(NotFound):
    """Raised when a prompt does not exist or is soft-deleted."""

    code = "prompt_not_found"

    def __init__(self, prompt_id: str):
        self.prompt_id = prompt_id
        super().__init__(f"Prompt not found: {prompt_id}")


class VersionNotFound(NotFound):
    """Raised when a version does not exist or belongs to another prompt."""

    code = "version_not_found"

    def __init__(self, message: str = "Prompt version not found"):
        super().__init__(message)


class AlreadyExists(PromptManagerError):
    """Raised when an active prompt already uses the requested name."""

    code = "prompt_already_exists"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Prompt with name '{name}' already exists")


class NotDeleted(PromptManagerError):
    """Raised when restoring a prompt that is not deleted."""

    code = "prompt_not_deleted"

    def __init__(self, prompt_id: str):
        self.prompt_id = prompt_id
        super().__init__(f"Prompt is not deleted: {prompt_id}")


class VersionConflict(PromptManagerError):
    """
    Raised when concurrent writers kept claiming the same version number.

    Retryable: the caller may repeat the create call as-is.
    """

    code = "version_conflict"
    retryable = True

    def __init__(self, prompt_id: str, attempts: int):
        self.prompt_id = prompt_id
        self.attempts = attempts
        super().__init__(
            f"Version number conflict for prompt {prompt_id} after {attempts} attempts"
        )


class OperationCancelled(PromptManagerError):
    """Raised when the database cancelled a statement (timeout or cancel request)."""

    code = "operation_cancelled"
    retryable = True
