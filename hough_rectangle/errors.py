class HoughError(Exception):
    def __init__(self, msg: str, title: str = ""):
        super().__init__(msg)
        self.msg = msg
        self.title = title

    def __str__(self) -> str:
        if self.title:
            return f"{self.title}: {self.msg}"
        return self.msg


class InvalidConfigurationError(HoughError, ValueError):
    """Bin counts, angle ranges, window sizes or tolerances are unusable."""


class InvalidImageError(HoughError, ValueError):
    """An image argument is not a 2D floating point array."""
