from imghost.models.enums import Orientation
from imghost.models.image import Image
from imghost.models.tag import Tag, image_tags

__all__ = ["Image", "Orientation", "Tag", "image_tags"]
