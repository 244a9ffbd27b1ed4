import pytest

from app.core.exceptions import NotFoundError, TransientError
from app.services.artifact_store import LocalArtifactStore, build_receipt_name, media_type_for


def test_receipt_names_are_unique_and_follow_media_type():
    first = build_receipt_name("image/png")
    second = build_receipt_name("image/png")

    assert first != second
    assert first.startswith("receipt-")
    assert first.endswith(".png")
    assert build_receipt_name("image/jpeg; charset=binary").endswith(".jpg")


def test_receipt_name_rejects_types_outside_allow_list():
    with pytest.raises(ValueError):
        build_receipt_name("image/svg+xml")
    with pytest.raises(ValueError):
        build_receipt_name("text/html")


def test_media_type_for_unknown_suffix_is_opaque():
    assert media_type_for("receipt-abc.webp") == "image/webp"
    assert media_type_for("receipt-abc.html") == "application/octet-stream"


def test_save_read_and_delete(tmp_path):
    store = LocalArtifactStore(tmp_path / "artifacts")

    reference = store.save(b"\x89PNG data", "receipt-abc.png")

    assert reference == "receipt-abc.png"
    assert store.path_for(reference).read_bytes() == b"\x89PNG data"
    assert store.delete(reference) is True
    with pytest.raises(NotFoundError):
        store.path_for(reference)


def test_save_into_unusable_root_is_transient(tmp_path):
    # a regular file where the directory should be
    blocked_root = tmp_path / "blocked"
    blocked_root.write_bytes(b"")
    store = LocalArtifactStore(blocked_root)

    with pytest.raises(TransientError) as exc_info:
        store.save(b"data", "receipt-abc.png")

    assert exc_info.value.status_code == 503
    assert exc_info.value.headers["Retry-After"] == "1"


def test_path_traversal_references_are_rejected(tmp_path):
    store = LocalArtifactStore(tmp_path)

    with pytest.raises(ValueError):
        store.save(b"data", "../escape.png")
    with pytest.raises(NotFoundError):
        store.path_for("../../etc/passwd")
