class CommandValidationError(Exception):
    """The command is malformed (missing/invalid fields, unknown type)."""


class RuleViolation(Exception):
    """The command is well formed but the current game rules forbid it."""


class DuplicateCommand(Exception):
    """The idempotency token has already been recorded."""

    def __init__(self, command_id):
        super().__init__(f"Duplicate command {command_id}")
        self.command_id = command_id


class SolutionGenerationError(Exception):
    """Solution or hint generation ran out of attempts.

    Not retried automatically; a fresh NEW_GAME may be attempted.
    """
