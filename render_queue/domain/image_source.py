"""
Resolution of the image a render job starts from, and of the artifact
location a worker reports back.

Callers and workers have historically used different field names for both,
so each resolver walks a fixed precedence list and takes the first usable
string.
"""
from typing import Any, Optional

def _first_str(*candidates: Any) -> Optional[str]:
    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None

def _first_image(payload: dict[str, Any]) -> Optional[str]:
    images = payload.get("images")
    if isinstance(images, (list, tuple)) and images:
        return _first_str(images[0])
    return None

def resolve_image_url(
    input_url: Optional[str] = None,
    image_url: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> Optional[str]:
    """
    Precedence:
        input_url > image_url > payload.input_url > payload.image_url
        > payload.album_cover_url > payload.images[0]
    """
    payload = payload if isinstance(payload, dict) else {}
    return _first_str(
        input_url,
        image_url,
        payload.get("input_url"),
        payload.get("image_url"),
        payload.get("album_cover_url"),
        _first_image(payload),
    )

def extract_output_url(
    result: Any = None,
    output_url: Optional[str] = None,
) -> Optional[str]:
    """
    Precedence:
        result.gif_url > result.video_url > result.url > output_url
    """
    result = result if isinstance(result, dict) else {}
    return _first_str(
        result.get("gif_url"),
        result.get("video_url"),
        result.get("url"),
        output_url,
    )
