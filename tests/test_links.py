from blossom.links import BrokenLink, check_links, check_page


def write(path, html):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(html, encoding="utf-8")
    return path


def test_resolves_root_relative_and_relative_links(tmp_path):
    write(tmp_path / "index.html", '<a href="/blog/">Blog</a><a href="/feed.xml">Feed</a>')
    write(tmp_path / "feed.xml", "<rss/>")
    page = write(
        tmp_path / "blog" / "index.html",
        '<a href="../">Home</a><a href="post/#intro">Post</a><a href="#top">Top</a>'
        '<a href="https://example.com/missing/">Out</a><img src="/media/cat.png">',
    )
    write(tmp_path / "blog" / "post" / "index.html", "<p>post</p>")

    broken = check_page(tmp_path, page)
    assert broken == [BrokenLink("blog/index.html", "/media/cat.png", "target not found")]
    assert str(broken[0]) == "blog/index.html: /media/cat.png (target not found)"


def test_srcset_candidates_are_checked(tmp_path):
    write(tmp_path / "img" / "a-320.webp", "x")
    page = write(
        tmp_path / "index.html",
        '<picture><source srcset="/img/a-320.webp 320w, /img/a-640.webp 640w"></picture>',
    )
    assert [b.url for b in check_page(tmp_path, page)] == ["/img/a-640.webp"]


def test_base_path_must_prefix_root_links(tmp_path):
    write(tmp_path / "about" / "index.html", "<p>about</p>")
    page = write(tmp_path / "index.html", '<a href="/repo/about/">ok</a><a href="/about/">bad</a>')
    broken = check_page(tmp_path, page, "/repo")
    assert [(b.url, b.reason) for b in broken] == [("/about/", "outside base path /repo")]


def test_check_links_walks_tree_and_logs(tmp_path, caplog):
    write(tmp_path / "index.html", '<a href="/nope/">x</a>')
    write(tmp_path / "blog" / "index.html", '<a href="/">home</a>')
    broken = check_links(tmp_path)
    assert [b.page for b in broken] == ["index.html"]
    assert "Broken link in index.html: /nope/" in caplog.text
