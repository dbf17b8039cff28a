from __future__ import annotations

import re

from bs4 import BeautifulSoup

TRUSTED_MEDIA_HOSTS = (
    "youtube.com",
    "youtube-nocookie.com",
    "youtu.be",
    "spotify.com",
    "soundcloud.com",
)

BLOCKED_TAGS = ("meta", "link", "iframe", "embed", "object")

_YOUTUBE_ID = re.compile(
    r"^.*(youtu\.be/|v/|u/\w/|embed/|watch\?v=|&v=|shorts/|live/)([^#&?]*).*"
)
_IFRAME_ALLOW = (
    "accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; "
    "picture-in-picture; web-share"
)


def sanitize_html(html: str | None) -> str:
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all("script"):
        tag.decompose()
    for tag in soup.find_all(BLOCKED_TAGS):
        if tag.decomposed:
            continue
        if not _is_trusted_media(str(tag)):
            tag.decompose()
    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            if attr.lower().startswith("on"):
                del tag.attrs[attr]
        href = tag.get("href")
        if isinstance(href, str) and href.strip().lower().startswith("javascript:"):
            tag["href"] = "#"
    _normalize_youtube_embeds(soup)
    return str(soup)


def extract_youtube_video_id(url: str | None) -> str | None:
    if not url:
        return None
    match = _YOUTUBE_ID.match(url)
    if match and len(match.group(2)) == 11:
        return match.group(2)
    return None


def clean_slug(text: str) -> str:
    lowered = (text or "").lower().strip()
    cleaned = re.sub(r"[^a-z0-9 ]+", "", lowered).strip()
    return re.sub(r" +", "-", cleaned)


def strip_all_html(text: str) -> str:
    return BeautifulSoup(text or "", "html.parser").get_text().strip()


def _is_trusted_media(markup: str) -> bool:
    lower = markup.lower()
    return any(host in lower for host in TRUSTED_MEDIA_HOSTS)


def _normalize_youtube_embeds(soup: BeautifulSoup) -> None:
    for frame in soup.find_all("iframe"):
        video_id = extract_youtube_video_id(frame.get("src"))
        if not video_id:
            continue
        wrapper = soup.new_tag("div", attrs={"class": "video-wrap"})
        replacement = soup.new_tag(
            "iframe",
            attrs={
                "src": f"https://www.youtube-nocookie.com/embed/{video_id}?rel=0",
                "frameborder": "0",
                "allow": _IFRAME_ALLOW,
                "allowfullscreen": "",
            },
        )
        wrapper.append(replacement)
        frame.replace_with(wrapper)
