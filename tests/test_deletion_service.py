import pytest
from sqlmodel import select

from imagefamily.application.services.family_index import FallbackSelf
from imagefamily.db.models import ImageAttachment
from imagefamily.exceptions import TransactionFailure, ImageNotFound, ValidationError


def _attachments(env, image_id):
    return env.session.exec(select(ImageAttachment).where(ImageAttachment.image_id == image_id)).all()


def test_delete_image_removes_record_object_and_attachments(env):
    original = env.add_original()
    env.images.attach(original.id, "product", 10)
    env.images.attach(original.id, "product_variant", 11)

    item = env.deletion.delete_image(original.id)

    assert item["detached"] == 2
    assert env.repo.get(original.id) is None
    assert original.filename not in env.storage.objects
    assert _attachments(env, original.id) == []


def test_delete_unattached_image(env):
    original = env.add_original()
    item = env.deletion.delete_image(original.id)
    assert item["detached"] == 0


def test_storage_failure_rolls_back_detach_and_delete(env):
    original = env.add_original()
    env.images.attach(original.id, "product", 10)
    env.storage.fail_delete = True

    with pytest.raises(TransactionFailure) as exc:
        env.deletion.delete_image(original.id)

    assert exc.value.image_id == original.id
    assert exc.value.display_title == "photo.png"
    assert "permission denied" in str(exc.value.cause)
    assert env.repo.get(original.id) is not None
    assert len(_attachments(env, original.id)) == 1
    assert original.filename in env.storage.objects


def test_delete_missing_image_is_not_found(env):
    with pytest.raises(ImageNotFound):
        env.deletion.delete_image(404)


def test_deleting_original_leaves_variants_behind(env):
    original = env.add_original()
    result = env.variants.derive_variants(original.id, ["thumb", "small", "medium", "large"])
    variant_ids = [v.id for v in result.generated]

    env.deletion.delete_image(original.id)

    survivors = env.index.list_variants(original.id)
    assert sorted(v.id for v in survivors) == sorted(variant_ids)
    for variant in survivors:
        resolution = env.index.resolve_original(variant)
        assert isinstance(resolution, FallbackSelf)
        assert resolution.original.id == variant.id


def test_delete_variants_keeps_original(env):
    original = env.add_original()
    env.variants.derive_variants(original.id, ["thumb", "small"])

    deleted = env.deletion.delete_variants(original.id)

    assert len(deleted) == 2
    assert env.index.list_variants(original.id) == []
    assert env.repo.get(original.id) is not None
    assert "images/photo-thumb.png" not in env.storage.objects


def test_delete_variants_is_all_or_nothing(env, monkeypatch):
    original = env.add_original()
    env.variants.derive_variants(original.id, ["thumb", "small", "medium"])
    real_delete = env.storage.delete

    def flaky_delete(key):
        if key.endswith("-medium.png"):
            raise OSError("io error")
        real_delete(key)

    monkeypatch.setattr(env.storage, "delete", flaky_delete)

    with pytest.raises(TransactionFailure):
        env.deletion.delete_variants(original.id)

    assert len(env.index.list_variants(original.id)) == 3
    assert "images/photo-thumb.png" in env.storage.objects
    assert "images/photo-small.png" in env.storage.objects


def test_delete_family_removes_everything(env):
    original = env.add_original()
    env.variants.derive_variants(original.id, ["thumb", "small"])

    deleted = env.deletion.delete_family(original.id)

    assert [d["id"] for d in deleted][-1] == original.id
    assert len(deleted) == 3
    assert env.repo.get(original.id) is None
    assert env.index.list_variants(original.id) == []
    assert env.storage.objects == {}


def test_delete_family_rejects_variant(env):
    original = env.add_original()
    variant = env.variants.derive_variants(original.id, ["thumb"]).generated[0]
    with pytest.raises(ValidationError):
        env.deletion.delete_family(variant.id)


def test_bulk_delete_success(env):
    a = env.add_original(filename="images/a.png")
    b = env.add_original(filename="images/b.png")

    result = env.deletion.bulk_delete_images([a.id, b.id, a.id])

    assert result.success
    assert result.deleted_count == 2
    assert [i["id"] for i in result.deleted_items] == [a.id, b.id]
    assert env.repo.get(a.id) is None and env.repo.get(b.id) is None


def test_bulk_delete_rolls_back_whole_batch(env):
    a = env.add_original(filename="images/a.png")
    b = env.add_original(filename="images/b.png")

    result = env.deletion.bulk_delete_images([a.id, 9999, b.id])

    assert not result.success
    assert result.deleted_count == 0
    assert result.errors == [{"id": 9999, "title": None, "error": "Image 9999 not found"}]
    assert env.repo.get(a.id) is not None
    assert env.repo.get(b.id) is not None
    assert "images/a.png" in env.storage.objects
    assert "images/b.png" in env.storage.objects


def test_bulk_delete_requires_ids(env):
    with pytest.raises(ValidationError):
        env.deletion.bulk_delete_images([])


def test_family_activity_includes_variants_and_survives_deletion(env):
    original = env.add_original()
    variant = env.variants.derive_variants(original.id, ["thumb"]).generated[0]
    env.images.update_image(variant.id, title="Thumb")

    activity = env.activity.activity_for_family(variant.id)

    assert {a.image_id for a in activity} == {original.id, variant.id}
    assert {"variant_generated", "image_updated"}.issubset({a.action for a in activity})
