import pytest

from imagefamily.application.services.image_service import clean_tags, validate_tag
from imagefamily.db.models import VARIANTS_FOLDER
from imagefamily.exceptions import ValidationError


def test_clean_tags_trims_collapses_and_dedupes():
    assert clean_tags(["  summer   sale ", "summer sale", "", "new_in", "x-1"]) == ["summer sale", "new_in", "x-1"]


def test_invalid_tags_are_rejected():
    assert validate_tag("a" * 51) is not None
    assert validate_tag("emoji🙂") is not None
    with pytest.raises(ValidationError):
        clean_tags(["ok", "bad/tag"])


def test_upload_original_stores_object_and_extracts_metadata(env, image_bytes):
    image = env.images.upload_original(
        image_bytes(640, 480), "Chair.PNG", "image/png", folder="products", tags=["chairs"], title="Chair",
    )

    assert image.filename.startswith("images/") and image.filename.endswith(".png")
    assert image.filename in env.storage.objects
    assert (image.width, image.height) == (640, 480)
    assert image.mime_type == "image/png"
    assert image.folder == "products"
    assert image.tags == ["chairs"]
    assert image.url == env.storage.url_for(image.filename)


def test_upload_rejects_bad_input(env, image_bytes):
    with pytest.raises(ValidationError):
        env.images.upload_original(b"data", "a.txt", "text/plain")
    with pytest.raises(ValidationError):
        env.images.upload_original(b"", "a.png", "image/png")
    with pytest.raises(ValidationError):
        env.images.upload_original(image_bytes(10, 10), "a.png", "image/png", folder=VARIANTS_FOLDER)
    assert env.storage.objects == {}


def test_upload_of_undecodable_image_keeps_zero_dimensions(env):
    image = env.images.upload_original(b"\x89PNG broken", "broken.png", "image/png")
    assert (image.width, image.height) == (0, 0)


def test_reprocess_generates_default_variants_for_large_originals(env):
    original = env.add_original(width=0, height=0)

    out = env.images.reprocess(original.id)

    assert (out["image"].width, out["image"].height) == (800, 400)
    assert out["derivation"].created_types == ["thumb", "small", "medium"]


def test_reprocess_skips_variants_for_small_originals(env, image_bytes):
    original = env.add_original(width=0, height=0, store=False)
    env.storage.objects[original.filename] = image_bytes(120, 90)

    out = env.images.reprocess(original.id)

    assert out["derivation"] is None
    assert env.index.list_variants(original.id) == []


def test_bulk_tag_add_replace_remove(env):
    a = env.add_original(filename="images/a.png", tags=["old"])
    b = env.add_original(filename="images/b.png")

    out = env.images.bulk_tag([a.id, b.id], ["sale", "featured"], "add")
    assert out["updated_count"] == 2
    assert env.repo.get(a.id).tags == ["old", "sale", "featured"]

    env.images.bulk_tag([a.id], ["fresh"], "replace")
    assert env.repo.get(a.id).tags == ["fresh"]

    env.images.bulk_tag([b.id], ["sale"], "remove")
    assert env.repo.get(b.id).tags == ["featured"]


def test_bulk_tag_never_strips_family_tags(env):
    original = env.add_original()
    variant = env.variants.derive_variants(original.id, ["thumb"]).generated[0]

    env.images.bulk_tag([variant.id], ["thumb", "variant", "promo"], "remove")
    env.images.bulk_tag([variant.id], ["promo"], "replace")

    tags = env.repo.get(variant.id).tags
    assert {"thumb", "variant", f"original-{original.id}", "promo"} == set(tags)
    assert env.index.resolve_original(env.repo.get(variant.id)).original.id == original.id


def test_bulk_tag_rejects_reserved_size_tag(env):
    original = env.add_original()
    thumb = env.variants.derive_variants(original.id, ["thumb"]).generated[0]

    with pytest.raises(ValidationError):
        env.images.bulk_tag([thumb.id], ["large"], "add")
    with pytest.raises(ValidationError):
        env.images.bulk_tag([thumb.id], ["variant", "medium"], "replace")

    result = env.variants.derive_variants(original.id, ["large"])
    assert result.created_types == ["large"]
    assert result.generated[0].id != thumb.id
    assert env.variants.get_variant(original.id, "thumb").id == thumb.id


def test_bulk_tag_rejects_foreign_original_tag(env):
    original = env.add_original()
    thumb = env.variants.derive_variants(original.id, ["thumb"]).generated[0]

    with pytest.raises(ValidationError):
        env.images.bulk_tag([thumb.id], ["original-999"], "add")
    with pytest.raises(ValidationError):
        env.images.update_image(thumb.id, tags=["original-999"])

    resolution = env.index.resolve_original(env.repo.get(thumb.id))
    assert not resolution.is_fallback
    assert resolution.original.id == original.id


def test_update_image_accepts_own_family_tags(env):
    original = env.add_original()
    thumb = env.variants.derive_variants(original.id, ["thumb"]).generated[0]

    updated = env.images.update_image(thumb.id, tags=list(thumb.tags) + ["hero"])

    assert updated.tags == ["thumb", "variant", f"original-{original.id}", "hero"]
    with pytest.raises(ValidationError):
        env.images.update_image(thumb.id, tags=["small"])


def test_upload_rejects_reserved_tags(env, image_bytes):
    with pytest.raises(ValidationError):
        env.images.upload_original(image_bytes(10, 10), "a.png", "image/png", tags=["original-3"])
    assert env.storage.objects == {}


def test_bulk_tag_validation(env):
    a = env.add_original()
    with pytest.raises(ValidationError):
        env.images.bulk_tag([], ["x"])
    with pytest.raises(ValidationError):
        env.images.bulk_tag([a.id], ["x"], "merge")
    with pytest.raises(ValidationError):
        env.images.bulk_tag([a.id], ["  "])


def test_bulk_move(env):
    a = env.add_original(filename="images/a.png")
    b = env.add_original(filename="images/b.png", folder="chairs")

    out = env.images.bulk_move([a.id, b.id], " chairs ")

    assert out["moved_count"] == 1
    assert env.repo.get(a.id).folder == "chairs"
    assert env.images.list_folders() == ["chairs"]


def test_bulk_move_protects_reserved_folder(env):
    original = env.add_original()
    variant = env.variants.derive_variants(original.id, ["thumb"]).generated[0]
    with pytest.raises(ValidationError):
        env.images.bulk_move([original.id], VARIANTS_FOLDER)
    with pytest.raises(ValidationError):
        env.images.bulk_move([variant.id], "elsewhere")
    assert env.repo.get(variant.id).folder == VARIANTS_FOLDER


def test_update_image_keeps_variant_in_family(env):
    original = env.add_original()
    variant = env.variants.derive_variants(original.id, ["thumb"]).generated[0]
    with pytest.raises(ValidationError):
        env.images.update_image(variant.id, folder="misc")
    updated = env.images.update_image(variant.id, tags=["hero"])
    assert "hero" in updated.tags and f"original-{original.id}" in updated.tags


def test_library_listing_excludes_variants(env):
    original = env.add_original(title="Blue Sofa", folder="sofas", tags=["blue"])
    other = env.add_original(filename="images/other.png", title="Lamp")
    env.variants.derive_variants(original.id, ["thumb"])

    assert {i.id for i in env.images.list_originals()} == {original.id, other.id}
    assert [i.id for i in env.images.list_originals(folder="sofas")] == [original.id]
    assert [i.id for i in env.images.list_originals(tag="blue")] == [original.id]
    assert [i.id for i in env.images.list_originals(search="lamp")] == [other.id]


def test_stats_and_tags(env):
    original = env.add_original(tags=["blue"])
    env.add_original(filename="images/other.png")
    env.variants.derive_variants(original.id, ["thumb"])
    env.images.attach(original.id, "product", 1)

    stats = env.images.stats()

    assert stats == {"total": 3, "originals": 2, "variants": 1, "unattached": 2, "folders": 1}
    assert env.images.list_tags() == sorted({"blue", "thumb", "variant", f"original-{original.id}"})


def test_detach_single_relationship(env):
    original = env.add_original()
    env.images.attach(original.id, "product", 1)
    env.images.attach(original.id, "product", 1)
    assert env.images.detach(original.id, "product", 1) == 1
    assert env.images.detach(original.id, "product", 1) == 0
