"""
WebCompass Proxy - Data Models
Stored records and the typed results of the four browser operations
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union


def _iso(value: datetime) -> str:
    return value.isoformat()


# =============================================================================
# STORED RECORDS
# =============================================================================

@dataclass(frozen=True)
class NavigationRecord:
    """One completed or attempted navigation."""
    id: int
    url: str
    title: Optional[str]
    response_time: int  # milliseconds
    status_code: int  # 0 when no HTTP response was received
    content_size: int  # bytes of serialized document
    timestamp: datetime
    screenshot_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "responseTime": self.response_time,
            "statusCode": self.status_code,
            "contentSize": self.content_size,
            "screenshotPath": self.screenshot_path,
            "timestamp": _iso(self.timestamp),
        }


@dataclass(frozen=True)
class ScriptEntry:
    """One saved, reusable script."""
    id: int
    name: str
    content: str
    created_at: datetime
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "content": self.content,
            "createdAt": _iso(self.created_at),
        }


# =============================================================================
# OPERATION RESULTS
# =============================================================================

@dataclass
class NavigationResult:
    """Outcome of a navigation, as recorded in history."""
    url: str
    title: Optional[str]
    response_time: int
    status_code: int
    content_size: int
    history_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "responseTime": self.response_time,
            "statusCode": self.status_code,
            "contentSize": self.content_size,
            "historyId": self.history_id,
        }


@dataclass
class ScreenshotResult:
    """Where a captured screenshot was stored."""
    screenshot_path: str
    history_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "screenshotPath": self.screenshot_path,
            "message": "Screenshot captured successfully",
        }
        if self.history_id is not None:
            data["historyId"] = self.history_id
        return data


@dataclass
class ExtractedElement:
    """A single element matched by a CSS selector."""
    tag_name: str
    text_content: str
    inner_html: str
    attributes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_page(cls, raw: Dict[str, Any]) -> "ExtractedElement":
        """Build from the plain object returned by the in-page extractor."""
        return cls(
            tag_name=raw.get("tagName", ""),
            text_content=raw.get("textContent") or "",
            inner_html=raw.get("innerHTML") or "",
            attributes=dict(raw.get("attributes") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tagName": self.tag_name,
            "textContent": self.text_content,
            "innerHTML": self.inner_html,
            "attributes": self.attributes,
        }


# Either the matched elements or the whole serialized document
ExtractedContent = Union[List[ExtractedElement], str]


@dataclass
class ExtractionResult:
    """
    DOM content pulled from a loaded page.

    `content` is a list of elements when a selector was given, otherwise
    the full document markup and `selector` is the literal "html".
    """
    url: str
    selector: str
    content: ExtractedContent
    extracted_at: datetime

    @property
    def kind(self) -> str:
        return "markup" if isinstance(self.content, str) else "elements"

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.content, str):
            content: Any = self.content
        else:
            content = [element.to_dict() for element in self.content]
        return {
            "url": self.url,
            "selector": self.selector,
            "content": content,
            "extractedAt": _iso(self.extracted_at),
        }


@dataclass
class ScriptResult:
    """
    Outcome of evaluating a user script inside the page.

    A script that throws is still a successful operation: `error` carries
    the in-page exception message and `value` is None.
    """
    url: str
    script_preview: str
    executed_at: datetime
    value: Any = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "script": self.script_preview,
            "result": {"error": self.error} if self.failed else self.value,
            "executedAt": _iso(self.executed_at),
        }
