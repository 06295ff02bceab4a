from datetime import date
from typing import Optional


def fill_placeholders(
    content: str,
    *,
    title: str,
    author: str,
    category: str,
    today: Optional[date] = None,
) -> str:
    """Replace the {{TOKEN}} placeholders a template may carry. Unknown tokens are left alone."""
    today = today or date.today()
    replacements = {
        "{{TITLE}}": title,
        "{{DATE}}": today.strftime("%d/%m/%Y"),
        "{{AUTHOR}}": author,
        "{{CATEGORY}}": category,
    }
    for token, value in replacements.items():
        content = content.replace(token, value)
    return content
