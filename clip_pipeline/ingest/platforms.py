from __future__ import annotations

PLATFORM_DOMAINS = (
    ("youtube.com", "youtube"),
    ("youtu.be", "youtube"),
    ("twitch.tv", "twitch"),
    ("kick.com", "kick"),
    ("rumble.com", "rumble"),
    ("tiktok.com", "tiktok"),
    ("instagram.com", "instagram"),
    ("vimeo.com", "vimeo"),
)

SHORT_FORM_PLATFORMS = frozenset({"tiktok", "instagram"})

# platforms whose listed thumbnails are often missing or low quality
FRAME_EXTRACTION_PLATFORMS = frozenset({"kick", "rumble", "twitch"})

# cut-time hints that imply a 9:16 render
VERTICAL_HINTS = frozenset({"tiktok", "reels", "shorts", "instagram", "youtube_shorts"})


def detect_platform(url: str | None) -> str:
    if not url:
        return "other"
    lowered = url.lower()
    for domain, platform in PLATFORM_DOMAINS:
        if domain in lowered:
            return platform
    return "other"


def is_remote(location: str) -> bool:
    return location.startswith(("http://", "https://"))
