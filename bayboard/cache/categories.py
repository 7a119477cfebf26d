"""
Category configuration: which backend action fills each cache entry.
"""
from typing import Any, Dict

from bayboard import actions

from .core import DataCategory


# Category -> backend action
CATEGORY_ACTIONS: Dict[DataCategory, str] = {
    DataCategory.BRANCHES: actions.GET_BRANCHES,
    DataCategory.PICKERS: actions.GET_PICKERS,
    DataCategory.BAY_ASSIGNMENTS: actions.GET_BAY_ASSIGNMENTS,
    DataCategory.BUILD_VERSION: actions.GET_VERSION,
    DataCategory.STAGING_AREA: actions.GET_STAGING_AREA,
    DataCategory.TRUCKS: actions.GET_TRUCKS,
}


def get_action_for_category(category: DataCategory) -> str:
    """Backend action that produces ``category``'s data."""
    return CATEGORY_ACTIONS[category]


def extract_category_data(category: DataCategory, body: Any) -> Any:
    """
    Pull the cacheable payload out of a backend reply.

    Replies wrap their payload in ``data``. The version action on older
    backends answered with a bare ``version`` field instead.
    """
    if isinstance(body, dict):
        if "data" in body:
            return body["data"]
        if category is DataCategory.BUILD_VERSION and "version" in body:
            return body["version"]
    return body
