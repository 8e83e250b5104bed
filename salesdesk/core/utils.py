"""
Shared utility functions for the SalesDesk API.
"""

from typing import Optional


def apply_search_filter(query, count_query, search: Optional[str], *fields):
    """
    Apply ilike search filter to multiple fields.

    Args:
        query: The main SQLAlchemy query
        count_query: The count query for pagination
        search: The search term (can be None)
        *fields: SQLAlchemy column objects to search

    Returns:
        Tuple of (filtered_query, filtered_count_query)

    Example:
        query, count_query = apply_search_filter(
            query, count_query, search,
            User.code, User.name, User.email
        )
    """
    if not search or not fields:
        return query, count_query

    search_filter = f"%{search.lower()}%"

    # Build OR condition for all fields
    conditions = [field.ilike(search_filter) for field in fields]
    combined = conditions[0]
    for condition in conditions[1:]:
        combined = combined | condition

    return query.where(combined), count_query.where(combined)


def parse_user_agent(user_agent: Optional[str]) -> dict:
    """
    Coarse device/browser/OS classification of a User-Agent header.

    Stored with each session so a user can tell their logins apart.
    """
    if not user_agent:
        return {"device": "Unknown", "browser": "Unknown", "os": "Unknown"}

    ua = user_agent.lower()

    device = "Desktop"
    if "tablet" in ua or "ipad" in ua:
        device = "Tablet"
    elif "mobile" in ua or "android" in ua or "iphone" in ua:
        device = "Mobile"

    # Edge and Chrome both announce "chrome"; Chrome and Safari both announce "safari"
    browser = "Unknown"
    if "edg" in ua:
        browser = "Edge"
    elif "chrome" in ua or "crios" in ua:
        browser = "Chrome"
    elif "firefox" in ua or "fxios" in ua:
        browser = "Firefox"
    elif "safari" in ua:
        browser = "Safari"

    os_name = "Unknown"
    if "windows" in ua:
        os_name = "Windows"
    elif "android" in ua:
        os_name = "Android"
    elif "iphone" in ua or "ipad" in ua or "ios" in ua:
        os_name = "iOS"
    elif "mac os" in ua or "macintosh" in ua:
        os_name = "macOS"
    elif "linux" in ua:
        os_name = "Linux"

    return {"device": device, "browser": browser, "os": os_name}
