from newsdesk.security.html import clean_slug, extract_youtube_video_id, sanitize_html, strip_all_html


def test_sanitize_removes_scripts_and_handlers():
    html = '<p onclick="steal()">Hi<script>alert(1)</script></p><a href="javascript:x()">l</a>'
    cleaned = sanitize_html(html)
    assert "script" not in cleaned
    assert "onclick" not in cleaned
    assert 'href="#"' in cleaned


def test_sanitize_drops_untrusted_embeds_and_keeps_youtube():
    html = (
        '<iframe src="https://evil.example.com/x"></iframe>'
        '<iframe src="https://www.youtube.com/watch?v=dQw4w9WgXcQ"></iframe>'
        '<meta http-equiv="refresh" content="0">'
    )
    cleaned = sanitize_html(html)
    assert "evil.example.com" not in cleaned
    assert "<meta" not in cleaned
    assert 'class="video-wrap"' in cleaned
    assert "youtube-nocookie.com/embed/dQw4w9WgXcQ" in cleaned


def test_sanitize_empty():
    assert sanitize_html(None) == ""
    assert sanitize_html("") == ""


def test_youtube_id_extraction():
    assert extract_youtube_video_id("https://youtu.be/dQw4w9WgXcQ") == "dQw4w9WgXcQ"
    assert extract_youtube_video_id("https://example.com/video") is None


def test_clean_slug_and_strip():
    assert clean_slug("  AI & The Future: 2026  ") == "ai-the-future-2026"
    assert strip_all_html("<p>Hello <b>there</b></p>") == "Hello there"
