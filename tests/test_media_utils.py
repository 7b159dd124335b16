from datetime import datetime, timedelta, timezone

from cyclofit.media_utils import derive_video_key, is_accepted_video, sanitize_filename


def test_key_has_prefix_timestamp_and_filename():
    key = derive_video_key("ride.mp4", now=datetime(2024, 1, 1, 0, 0, 0))
    prefix, name = key.split("/", 1)
    assert prefix == "videos"
    millis, token, filename = name.split("-", 2)
    assert millis == "1704067200000"
    assert len(token) == 32
    assert filename == "ride.mp4"


def test_key_timestamp_honours_timezone():
    paris = timezone(timedelta(hours=1))
    key = derive_video_key("ride.mp4", now=datetime(2024, 1, 1, 1, 0, 0, tzinfo=paris))
    assert key.split("/", 1)[1].split("-", 1)[0] == "1704067200000"


def test_same_filename_same_instant_never_collides():
    now = datetime(2024, 1, 1)
    keys = {derive_video_key("ride.mp4", now=now) for _ in range(500)}
    assert len(keys) == 500


def test_sanitize_strips_paths_and_unsafe_characters():
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("C:\\Users\\me\\my ride (1).mov") == "my_ride_1_.mov"
    assert sanitize_filename(None) == "video"
    assert sanitize_filename("...") == "video"


def test_sanitize_keeps_extension_when_truncating():
    name = sanitize_filename("a" * 300 + ".mp4")
    assert len(name) == 120
    assert name.endswith(".mp4")


def test_accepted_video_types():
    assert is_accepted_video("video/mp4", "ride.mp4")
    assert is_accepted_video("video/quicktime", None)
    assert is_accepted_video("application/octet-stream", "ride.bin")
    # iOS uploads sometimes arrive with a generic type but a .mov name
    assert is_accepted_video("image/jpeg", "IMG_0001.MOV")
    assert not is_accepted_video("image/png", "photo.png")
    assert not is_accepted_video("text/plain", None)
