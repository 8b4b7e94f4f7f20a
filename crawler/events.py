"""
Typed progress events emitted by the orchestrator.

| event      | data                                                   |
|------------|--------------------------------------------------------|
| processing | {url}                                                  |
| success    | {url, depth, screenshot?: base64 JPEG, links: [...10]} |
| error      | {url, error}                                           |
| completed  | {}                                                     |
"""

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from crawler.core import LINK_PREVIEW_LIMIT
from crawler.models import PageResult

PROCESSING = "processing"
SUCCESS = "success"
ERROR = "error"
COMPLETED = "completed"

EVENT_TYPES = (PROCESSING, SUCCESS, ERROR, COMPLETED)

SCREENSHOT_MIME = "image/jpeg"


def screenshot_base64(image: bytes) -> str:
    return base64.b64encode(image).decode("ascii")


def screenshot_data_url(image: bytes, mime: str = SCREENSHOT_MIME) -> str:
    return f"data:{mime};base64,{screenshot_base64(image)}"


@dataclass(frozen=True)
class CrawlEvent:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.type!r}")

    @classmethod
    def processing(cls, url: str) -> "CrawlEvent":
        return cls(PROCESSING, {"url": url})

    @classmethod
    def success(cls, result: PageResult, link_limit: int = LINK_PREVIEW_LIMIT) -> "CrawlEvent":
        data: Dict[str, Any] = {
            "url": result.url,
            "depth": result.depth,
            "links": list(result.discovered_links[:link_limit]),
        }
        if result.screenshot is not None:
            data["screenshot"] = screenshot_base64(result.screenshot)
        return cls(SUCCESS, data)

    @classmethod
    def error(cls, url: Optional[str], message: str) -> "CrawlEvent":
        return cls(ERROR, {"url": url, "error": message})

    @classmethod
    def completed(cls) -> "CrawlEvent":
        return cls(COMPLETED, {})

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.type, "data": dict(self.data)}

    def to_sse(self) -> str:
        """Server-Sent-Events frame: event line, JSON data line, blank line."""
        return f"event: {self.type}\ndata: {json.dumps(self.data)}\n\n"


EventListener = Callable[[CrawlEvent], None]
