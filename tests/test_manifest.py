import json

from blossom.manifest import MANIFEST_VERSION, Manifest, can_reuse, compute_site_version


def test_save_and_load(tmp_path):
    path = tmp_path / ".blossom-manifest.json"
    manifest = Manifest(
        site_version="abc",
        documents={"b": "2", "a": "1"},
        images={"/cat.png": {"hash": "h", "width": 800, "height": 600, "variants": {}}},
        og={"a": "f"},
    )
    manifest.save(path)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == MANIFEST_VERSION
    assert list(payload["documents"]) == ["a", "b"]
    assert payload["generatedAt"]

    loaded = Manifest.load(path)
    assert loaded.site_version == "abc"
    assert loaded.documents == {"a": "1", "b": "2"}
    assert loaded.images["/cat.png"]["width"] == 800
    assert loaded.og == {"a": "f"}


def test_missing_or_corrupt_manifest_means_full_build(tmp_path):
    path = tmp_path / "m.json"
    assert Manifest.load(path) is None
    path.write_text("{not json", encoding="utf-8")
    assert Manifest.load(path) is None
    path.write_text(json.dumps({"version": 1, "documents": {}}), encoding="utf-8")
    assert Manifest.load(path) is None
    path.write_text(json.dumps({"version": MANIFEST_VERSION, "documents": []}), encoding="utf-8")
    assert Manifest.load(path) is None


def test_can_reuse_requires_every_condition(tmp_path):
    page = tmp_path / "index.html"
    page.write_text("<p>x</p>", encoding="utf-8")
    manifest = Manifest(site_version="v", documents={"post": "hash"})

    assert can_reuse(manifest, False, "post", "hash", page)
    assert not can_reuse(None, False, "post", "hash", page)
    assert not can_reuse(manifest, True, "post", "hash", page)
    assert not can_reuse(manifest, False, "post", "other", page)
    assert not can_reuse(manifest, False, "new", "hash", page)
    assert not can_reuse(manifest, False, "post", "hash", tmp_path / "gone.html")


def test_site_version_follows_config_and_assets():
    base = compute_site_version({"title": "a"}, "css1")
    assert base == compute_site_version({"title": "a"}, "css1")
    assert base != compute_site_version({"title": "b"}, "css1")
    assert base != compute_site_version({"title": "a"}, "css2")
