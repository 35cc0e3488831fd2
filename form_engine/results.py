"""
Result types returned by page handlers and the navigation resolver.

These are framework-neutral; the Flask layer in app.py turns them into
HTTP responses.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List


@dataclass(frozen=True)
class Redirect:
    """
    Send the browser elsewhere.

    Attributes:
        location: Target URL (always relative)
        status_code: 303 after a POST (prevents resubmission), 302 otherwise
    """
    location: str
    status_code: int = 302


@dataclass(frozen=True)
class PageView:
    """
    Render a page.

    Attributes:
        page_path: Path of the page being rendered (e.g. '/full-name')
        title: Page title
        components: Field names the page collects
        values: Current answers for those fields
        errors: Flash errors to show (already consumed)
        reference_number: Form instance reference number
        data: Extra rendering data from the form context
    """
    page_path: str
    title: str
    components: List[str] = field(default_factory=list)
    values: Dict[str, Any] = field(default_factory=dict)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    reference_number: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
