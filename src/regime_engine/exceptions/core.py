class RegimeEngineError(Exception):
    pass

class ConfigError(RegimeEngineError):
    pass

class DataError(RegimeEngineError):
    pass


class OutOfOrderTickError(DataError):
    """Tick timestamp does not advance past the last processed tick; state is left untouched."""

    def __init__(self, timestamp: int, last_timestamp: int):
        self.timestamp = int(timestamp)
        self.last_timestamp = int(last_timestamp)
        super().__init__(
            f"tick timestamp {self.timestamp} does not advance past last processed {self.last_timestamp}"
        )


class DuplicateTickError(OutOfOrderTickError):
    """Tick repeats the last processed timestamp."""
