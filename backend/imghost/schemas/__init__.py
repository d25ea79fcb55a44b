from imghost.schemas.images import (
    ImageFilters,
    ImagePage,
    ImagePaths,
    ImageRecord,
    ImageSizes,
    ImageUpdate,
    RandomFilters,
    UploadResult,
    UploadUrls,
)
from imghost.schemas.tags import TagCount

__all__ = [
	"ImageFilters",
	"ImagePage",
	"ImagePaths",
	"ImageRecord",
	"ImageSizes",
	"ImageUpdate",
	"RandomFilters",
	"TagCount",
	"UploadResult",
	"UploadUrls",
]
