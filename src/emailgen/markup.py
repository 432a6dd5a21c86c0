import re
from typing import List

from emailgen.models import LintReport

_HTML_FENCE_RE = re.compile(r"```html\s*([\s\S]*?)\s*```", re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```\s*([\s\S]*?)\s*```")

GMAIL_CLIP_BYTES = 102 * 1024


def extract_html(text: str) -> str:
    """
    Pulls HTML out of a model answer: the body of a ```html fence, else of a
    bare ``` fence, else the text unchanged.
    """
    match = _HTML_FENCE_RE.search(text) or _ANY_FENCE_RE.search(text)
    if match and match.group(1):
        return match.group(1)
    return text


def lint_email(html: str) -> LintReport:
    """Static checks for markup that breaks in common email clients."""
    errors: List[str] = []
    warnings: List[str] = []

    total_size = len(html.encode("utf-8"))
    if total_size > GMAIL_CLIP_BYTES:
        warnings.append(f"Size ({total_size // 1024}KB) exceeds Gmail clipping limit (102KB)")

    if re.search(r"display\s*:\s*flex", html, re.IGNORECASE):
        errors.append("display:flex detected; use a table-based layout")
    if re.search(r"display\s*:\s*grid", html, re.IGNORECASE):
        errors.append("display:grid detected; use a table-based layout")
    if re.search(r"position\s*:\s*(absolute|relative|fixed)", html, re.IGNORECASE):
        errors.append("CSS position is not supported in email clients")
    if re.search(r"float\s*:\s*(left|right)", html, re.IGNORECASE):
        errors.append("CSS float breaks in Outlook")
    if not re.search(r"<table", html, re.IGNORECASE):
        errors.append("No table layout detected")

    if not re.search(r"@media", html, re.IGNORECASE):
        warnings.append("No media queries found; email may not be mobile responsive")

    for i, img in enumerate(re.findall(r"<img[^>]*>", html, re.IGNORECASE), start=1):
        if not re.search(r"alt=", img, re.IGNORECASE):
            warnings.append(f"Image {i} missing alt attribute")
        if not re.search(r"style=[\"'][^\"']*display\s*:\s*block", img, re.IGNORECASE):
            warnings.append(f"Image {i} missing display:block style")

    return LintReport(is_valid=not errors, errors=errors, warnings=warnings)
