class AppError(Exception):
    """Base class for all bonscan exceptions."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(AppError):
    """Missing or invalid runtime configuration (API keys, data files)."""
    pass
