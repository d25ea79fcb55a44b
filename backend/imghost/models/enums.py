from enum import Enum


class Orientation(str, Enum):
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"

    @classmethod
    def from_dimensions(cls, width: int, height: int) -> "Orientation":
        # Square images count as landscape
        return cls.LANDSCAPE if width >= height else cls.PORTRAIT
