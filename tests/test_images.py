import os

from bs4 import BeautifulSoup
from PIL import Image

from blossom.images import (
    ImageOptimizer,
    ImageSource,
    PictureRewriter,
    VariantSet,
    discover_sources,
    plan_widths,
    variant_name,
)

WIDTHS = (320, 640, 960, 1280)


def make_image(path, size=(800, 600), color=(200, 50, 50)):
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path)
    return path


def test_plan_widths():
    assert plan_widths(800, WIDTHS) == [320, 640]
    assert plan_widths(1280, WIDTHS) == [320, 640, 960, 1280]
    assert plan_widths(100, WIDTHS) == [100]


def test_discover_sources_maps_keys(tmp_path):
    make_image(tmp_path / "public" / "hero.jpg")
    make_image(tmp_path / "notes" / "posts" / "cat.png")
    make_image(tmp_path / "notes" / "attachments" / "scan.png")
    (tmp_path / "public" / "notes.txt").write_text("x", encoding="utf-8")

    keys = [s.key for s in discover_sources(tmp_path / "public", tmp_path / "notes")]
    assert keys == ["/hero.jpg", "/media/posts/cat.png"]


def test_optimizer_encodes_and_reuses(tmp_path):
    source = ImageSource("/media/cat.png", make_image(tmp_path / "notes" / "cat.png"))
    out = tmp_path / "dist"

    optimizer = ImageOptimizer(out, WIDTHS)
    variants = optimizer.run([source])
    variant_set = variants["/media/cat.png"]
    assert optimizer.encoded == 1
    assert (variant_set.width, variant_set.height) == (800, 600)
    assert [w for w, _ in variant_set.variants] == [320, 640]
    assert variant_set.height_for(320) == 240
    for name in variant_set.filenames():
        with Image.open(out / "img" / name) as encoded:
            assert encoded.format == "WEBP"

    first_file = out / "img" / variant_set.filenames()[0]
    os.utime(first_file, (1_000_000_000, 1_000_000_000))
    records = {key: vs.to_record() for key, vs in variants.items()}
    again = ImageOptimizer(out, WIDTHS, records)
    assert again.run([source])["/media/cat.png"].variants == variant_set.variants
    assert again.reused == 1
    assert again.encoded == 0
    assert int(first_file.stat().st_mtime) == 1_000_000_000


def test_optimizer_reencodes_changed_source_and_prunes(tmp_path):
    path = make_image(tmp_path / "public" / "hero.png", size=(400, 300))
    out = tmp_path / "dist"
    source = ImageSource("/hero.png", path)
    first = ImageOptimizer(out, WIDTHS).run([source])["/hero.png"]

    make_image(path, size=(400, 300), color=(0, 0, 255))
    records = {"/hero.png": first.to_record()}
    second = ImageOptimizer(out, WIDTHS, records).run([source])["/hero.png"]
    assert second.hash != first.hash
    assert sorted(p.name for p in (out / "img").iterdir()) == sorted(second.filenames())

    ImageOptimizer(out, WIDTHS, {"/hero.png": second.to_record()}).run([])
    assert list((out / "img").iterdir()) == []


def test_unreadable_image_is_skipped(tmp_path, caplog):
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not an image")
    assert ImageOptimizer(tmp_path / "dist", WIDTHS).run([ImageSource("/broken.png", broken)]) == {}
    assert "Skipping unreadable image" in caplog.text


def sample_variants():
    hash_ = "ab" * 32
    return {
        "/media/cat.png": VariantSet(
            key="/media/cat.png",
            hash=hash_,
            width=800,
            height=600,
            variants=[
                (320, f"/img/{variant_name('cat', 320, hash_)}"),
                (640, f"/img/{variant_name('cat', 640, hash_)}"),
            ],
        )
    }


def rewrite(rewriter, html, page_path="/"):
    soup = BeautifulSoup(html, "html.parser")
    rewriter.rewrite_soup(soup, page_path)
    return str(soup)


def test_picture_rewriter_builds_picture():
    rewriter = PictureRewriter(sample_variants())
    html = '<p><img alt="A cat" class="wide" src="/media/cat.png"></p><img src="/other.png">'
    result = rewrite(rewriter, html, "/blog/post/")

    assert '<picture data-responsive="/media/cat.png">' in result
    assert (
        '<source type="image/webp" '
        'srcset="/img/cat-320.abababab.webp 320w, /img/cat-640.abababab.webp 640w" '
        'sizes="(max-width: 48rem) 100vw, 48rem"/>'
    ) in result
    assert 'src="/img/cat-640.abababab.webp"' in result
    assert 'width="640" height="480"' in result
    assert 'loading="lazy"' in result
    assert 'alt="A cat"' in result
    assert '<img src="/other.png"/>' in result

    soup = BeautifulSoup(result, "html.parser")
    assert rewriter.rewrite_soup(soup, "/blog/post/") is False
    assert str(soup) == result


def test_picture_rewriter_resolves_relative_and_base_paths():
    rewriter = PictureRewriter(sample_variants(), base_path="/repo")
    result = rewrite(rewriter, '<img src="../../media/cat.png">', "/repo/blog/post/")
    assert 'data-responsive="/media/cat.png"' in result
    assert 'src="/repo/img/cat-640.abababab.webp"' in result


def test_picture_rewriter_with_base_named_like_a_route():
    variants = {"/blog/cat.png": sample_variants()["/media/cat.png"]}
    rewriter = PictureRewriter(variants, base_path="/blog")
    result = rewrite(rewriter, '<img src="/blog/blog/cat.png">', "/blog/blog/post/")
    assert 'data-responsive="/blog/cat.png"' in result
    assert 'src="/blog/img/cat-640.abababab.webp"' in result


def test_picture_falls_back_when_source_disappears():
    html = rewrite(PictureRewriter(sample_variants()), '<img alt="x" src="/media/cat.png">')
    result = rewrite(PictureRewriter({}), html)
    assert "<picture" not in result
    assert 'src="/media/cat.png"' in result
    assert 'alt="x"' in result
