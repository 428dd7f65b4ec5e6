import re

from blossom.assets import AssetPipeline, extract_critical_css, fingerprint_name
from blossom.config import load_config


def make_project(tmp_path):
    (tmp_path / "css").mkdir()
    (tmp_path / "css" / "style.css").write_text(
        "/* base */\n:root { --fg: #222; }\nbody { margin: 0; }\n.card { padding: 1rem; }\n",
        encoding="utf-8",
    )
    (tmp_path / "css" / "fonts").mkdir()
    (tmp_path / "css" / "fonts" / "inter.woff2").write_bytes(b"font")
    (tmp_path / "js").mkdir()
    (tmp_path / "js" / "main.js").write_text("function  hello ( ) {\n  return 1;\n}\n", encoding="utf-8")
    return load_config(tmp_path)


def test_fingerprint_name_embeds_hash():
    assert re.fullmatch(r"style\.[0-9a-f]{10}\.css", fingerprint_name("style.css", b"body{}"))
    assert fingerprint_name("a.css", b"x") != fingerprint_name("a.css", b"y")


def test_critical_css_keeps_selected_blocks():
    css = ":root { --a: 1; }\n/* .card */\n.card { x: y; }\nbody\n{\n  margin: 0;\n}\n"
    assert extract_critical_css(css, [":root", "body"]) == ":root { --a: 1;}body { margin: 0;}"
    assert extract_critical_css(css, [".missing"]) == ""


def test_pipeline_fingerprints_and_copies(tmp_path):
    config = make_project(tmp_path)
    out = tmp_path / "dist"
    bundle = AssetPipeline(config, out).run()

    assert re.fullmatch(r"/css/style\.[0-9a-f]{10}\.css", bundle.stylesheet)
    assert re.fullmatch(r"/js/main\.[0-9a-f]{10}\.js", bundle.scripts["main"])
    assert ":root" in bundle.critical_css
    assert ".card" not in bundle.critical_css
    css = (out / bundle.stylesheet.lstrip("/")).read_text(encoding="utf-8")
    assert ".highlight" in css
    assert (out / "css" / "fonts" / "inter.woff2").read_bytes() == b"font"
    assert not (out / "css" / "style.css").exists()


def test_pipeline_replaces_stale_fingerprints(tmp_path):
    config = make_project(tmp_path)
    out = tmp_path / "dist"
    first = AssetPipeline(config, out).run()
    again = AssetPipeline(config, out).run()
    assert again.fingerprint() == first.fingerprint()

    (tmp_path / "css" / "style.css").write_text("body { color: red; }\n", encoding="utf-8")
    second = AssetPipeline(config, out).run()
    assert second.stylesheet != first.stylesheet
    assert second.fingerprint() != first.fingerprint()
    assert [p.name for p in (out / "css").glob("style.*.css")] == [second.stylesheet.rsplit("/", 1)[1]]


def test_missing_stylesheet_is_a_warning(tmp_path, caplog):
    bundle = AssetPipeline(load_config(tmp_path), tmp_path / "dist").run()
    assert bundle.stylesheet == ""
    assert bundle.scripts == {}
    assert "not found" in caplog.text
