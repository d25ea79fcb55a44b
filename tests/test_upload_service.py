import io
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
from PIL import Image
from redis.exceptions import RedisError

from imghost.core.config import Settings
from imghost.core.errors import FileTooLarge, TooManyFiles, UnsupportedFormat
from imghost.models.enums import Orientation
from imghost.services.cache import CacheService
from imghost.services.compression import CompressionResult, Compressor
from imghost.services.upload import UploadService, generate_paths, parse_tags


def make_image_bytes(fmt="PNG", size=(40, 30), color="red"):
    img = Image.new("RGB", size, color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def uploaded(blobs) -> dict[str, tuple[bytes, str]]:
    return {c.args[0]: (c.args[1], c.args[2]) for c in blobs.upload.call_args_list}


@pytest.fixture
def blobs(mocker):
    return mocker.Mock()


@pytest.fixture
def cache(mocker):
    return mocker.AsyncMock(spec=CacheService)


@pytest_asyncio.fixture
async def service(metadata, blobs, cache):
    service = UploadService(
        metadata,
        blobs,
        Compressor(),
        cache,
        Settings(_env_file=None, max_upload_bytes=1024 * 1024, max_upload_count=3),
    )
    yield service
    await service.drain()


# ------------------------------
# helpers
# ------------------------------

def test_parse_tags_trims_and_dedupes():
    assert parse_tags(" cat, orange ,,cat, ") == ["cat", "orange"]
    assert parse_tags("") == []
    assert parse_tags(None) == []


def test_generate_paths_by_format():
    paths = generate_paths("abc", Orientation.PORTRAIT, "jpeg")
    assert paths.original == "original/portrait/abc.jpg"
    assert paths.webp == "webp/portrait/abc.webp"
    assert paths.avif == "avif/portrait/abc.avif"

    gif = generate_paths("abc", Orientation.LANDSCAPE, "gif")
    assert gif.original == "original/landscape/abc.gif"
    assert (gif.webp, gif.avif) == ("", "")


# ------------------------------
# upload
# ------------------------------

@pytest.mark.asyncio
async def test_upload_stores_variants_and_metadata(service, metadata, blobs, cache):
    data = make_image_bytes()

    result = await service.upload("photo.png", data, tags=["cat", "orange"])
    await service.drain()

    assert result.status == "success"
    assert result.orientation is Orientation.LANDSCAPE
    assert result.format == "png"

    record = await metadata.get_image(result.id)
    assert record.original_name == "photo.png"
    assert (record.width, record.height) == (40, 30)
    assert record.tags == ["cat", "orange"]
    assert record.expiry_time is None

    stored = uploaded(blobs)
    assert set(stored) == {record.paths.original, record.paths.webp, record.paths.avif}
    assert stored[record.paths.original] == (data, "image/png")
    assert record.sizes.original == len(data)
    assert record.sizes.webp == len(stored[record.paths.webp][0])
    assert record.sizes.avif == len(stored[record.paths.avif][0])
    assert result.urls.original.endswith(record.paths.original)

    cache.invalidate_images_list.assert_awaited_once()
    cache.invalidate_tags_list.assert_awaited_once()


@pytest.mark.asyncio
async def test_gif_keeps_only_the_original(service, metadata, blobs):
    data = make_image_bytes("GIF", size=(10, 20))

    result = await service.upload("anim.gif", data)

    record = await metadata.get_image(result.id)
    assert record.orientation is Orientation.PORTRAIT
    assert (record.paths.webp, record.paths.avif) == ("", "")
    assert (record.sizes.webp, record.sizes.avif) == (0, 0)
    assert list(uploaded(blobs)) == [record.paths.original]
    assert (result.urls.webp, result.urls.avif) == ("", "")


@pytest.mark.asyncio
async def test_missing_variants_fall_back_to_original_bytes(metadata, blobs, cache, mocker):
    compressor = mocker.Mock()
    compressor.compress.return_value = CompressionResult()
    service = UploadService(metadata, blobs, compressor, cache, Settings(_env_file=None))
    data = make_image_bytes("JPEG")

    result = await service.upload("photo.jpg", data)
    await service.drain()

    record = await metadata.get_image(result.id)
    stored = uploaded(blobs)
    assert stored[record.paths.webp] == (data, "image/jpeg")
    assert stored[record.paths.avif] == (data, "image/jpeg")
    assert record.sizes.webp == record.sizes.avif == len(data)


@pytest.mark.asyncio
async def test_expiry_minutes_sets_expiry_time(service, metadata):
    before = datetime.now(timezone.utc)

    result = await service.upload("temp.png", make_image_bytes(), expiry_minutes=30)

    record = await metadata.get_image(result.id)
    assert record.expiry_time == result.expiry_time
    assert before + timedelta(minutes=30) <= record.expiry_time
    assert record.expiry_time - record.upload_time == timedelta(minutes=30)


@pytest.mark.asyncio
async def test_oversized_file_is_rejected_before_storage(metadata, blobs, cache):
    service = UploadService(metadata, blobs, Compressor(), cache, Settings(_env_file=None, max_upload_bytes=10))

    with pytest.raises(FileTooLarge):
        await service.upload("big.png", make_image_bytes())

    blobs.upload.assert_not_called()
    assert await metadata.list_image_ids() == []


@pytest.mark.asyncio
async def test_non_image_bytes_are_rejected(service, blobs):
    with pytest.raises(UnsupportedFormat) as exc_info:
        await service.upload("notes.txt", b"definitely not an image")

    assert exc_info.value.detail == "Unsupported format: unknown"
    blobs.upload.assert_not_called()


@pytest.mark.asyncio
async def test_unsupported_image_format_is_rejected(service):
    with pytest.raises(UnsupportedFormat) as exc_info:
        await service.upload("old.bmp", make_image_bytes("BMP"))

    assert exc_info.value.format == "bmp"


@pytest.mark.asyncio
async def test_cache_failure_does_not_fail_the_upload(service, metadata, cache):
    cache.invalidate_images_list.side_effect = RedisError("connection refused")

    result = await service.upload("photo.png", make_image_bytes())
    await service.drain()

    assert await metadata.get_image(result.id) is not None


# ------------------------------
# upload_many
# ------------------------------

@pytest.mark.asyncio
async def test_upload_many_reports_per_file_results(service, metadata, cache):
    results = await service.upload_many(
        [("ok.png", make_image_bytes()), ("bad.txt", b"nope")],
        tags=["batch"],
    )

    assert [r.status for r in results] == ["success", "error"]
    assert results[1].filename == "bad.txt"
    assert results[1].error == "Unsupported format: unknown"
    assert (await metadata.get_image(results[0].id)).tags == ["batch"]
    cache.invalidate_images_list.assert_awaited_once()
    cache.invalidate_tags_list.assert_awaited_once()


@pytest.mark.asyncio
async def test_upload_many_skips_invalidation_when_nothing_succeeded(service, cache):
    results = await service.upload_many([("bad.txt", b"nope")])

    assert results[0].status == "error"
    cache.invalidate_images_list.assert_not_awaited()


@pytest.mark.asyncio
async def test_upload_many_reports_storage_failures(service, metadata, blobs):
    blobs.upload.side_effect = ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")

    results = await service.upload_many([("photo.png", make_image_bytes())])

    assert results[0].status == "error"
    assert results[0].error == "Failed to upload photo.png"
    assert await metadata.list_image_ids() == []


@pytest.mark.asyncio
async def test_upload_many_enforces_file_count(service):
    files = [(f"{i}.png", make_image_bytes()) for i in range(4)]

    with pytest.raises(TooManyFiles):
        await service.upload_many(files)
