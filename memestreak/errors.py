class MemeStreakError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigError(MemeStreakError):
    """Required configuration is missing; the process cannot start."""


class StoreError(MemeStreakError):
    """A call against the database failed."""
