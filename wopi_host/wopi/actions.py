"""Resolves discovery actions for a file and builds the action (iframe) URLs."""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from common.logging_config import get_logger
from common.types import ActionDescriptor
from wopi_host.cache import TtlCache
from wopi_host import config

logger = get_logger(__name__)

UI_LLCC = "<ui=UI_LLCC&>"
DC_LLCC = "<rs=DC_LLCC&>"
DISABLE_CHAT = "<dchat=DISABLE_CHAT&>"
HOST_SESSION_ID = "<hid=HOST_SESSION_ID&>"
SESSION_CONTEXT = "<sc=SESSION_CONTEXT&>"
WOPI_SOURCE = "<wopisrc=WOPI_SOURCE&>"
PERFSTATS = "<showpagestats=PERFSTATS&>"
BUSINESS_USER = "<IsLicensedUser=BUSINESS_USER&>"
ACTIVITY_NAVIGATION_ID = "<actnavid=ACTIVITY_NAVIGATION_ID&>"
DISABLE_ASYNC = "<na=DISABLE_ASYNC&>"
DISABLE_BROADCAST = "<vp=DISABLE_BROADCAST&>"
EMBEDDED = "<e=EMBEDDED&>"
FULLSCREEN = "<fs=FULLSCREEN&>"
RECORDING = "<rec=RECORDING&>"
THEME_ID = "<thm=THEME_ID&>"
VALIDATOR_TEST_CATEGORY = "<testcategory=VALIDATOR_TEST_CATEGORY>"

# Substitution order; values are filled in this order regardless of where
# the placeholders appear in the template.
PLACEHOLDERS = [
    BUSINESS_USER, DC_LLCC, DISABLE_CHAT, PERFSTATS, UI_LLCC,
    HOST_SESSION_ID, SESSION_CONTEXT, WOPI_SOURCE, ACTIVITY_NAVIGATION_ID,
    DISABLE_ASYNC, DISABLE_BROADCAST, EMBEDDED, FULLSCREEN,
    RECORDING, THEME_ID, VALIDATOR_TEST_CATEGORY,
]

_LEFTOVER_PLACEHOLDER = re.compile(r"<[^<>]*=[^<>]*>")


@dataclass(frozen=True)
class ActionUrlSettings:
    """Host-chosen values for the placeholders this host supports."""
    locale: str = config.UI_LOCALE
    business_user: str = config.BUSINESS_USER
    theme_id: str = config.THEME_ID
    disable_chat: str = "0"
    perf_stats: str = "0"
    validator_test_category: str = config.VALIDATOR_TEST_CATEGORY


def wopi_source_url(base_url: str, file_id: str) -> str:
    """Canonical WOPISrc for a file."""
    return f"{base_url}/wopi/files/{file_id}"


def parameter_name(placeholder: str) -> str:
    """'<ui=UI_LLCC&>' -> 'ui='"""
    return placeholder[1:placeholder.index("=") + 1]


def placeholder_value(
    placeholder: str,
    file_id: str,
    base_url: str,
    settings: ActionUrlSettings
) -> str:
    """
    Query-string fragment for one placeholder, or "" when this host leaves
    it unset (session ids, broadcast-only and recording flags, ...).
    """
    values: Dict[str, str] = {
        BUSINESS_USER: settings.business_user,
        DC_LLCC: settings.locale,
        UI_LLCC: settings.locale,
        THEME_ID: settings.theme_id,
        DISABLE_CHAT: settings.disable_chat,
        PERFSTATS: settings.perf_stats,
        VALIDATOR_TEST_CATEGORY: settings.validator_test_category,
        WOPI_SOURCE: wopi_source_url(base_url, file_id),
    }
    value = values.get(placeholder)
    if not value:
        return ""
    return parameter_name(placeholder) + value


def build_action_url(
    action: ActionDescriptor,
    file_id: str,
    base_url: str,
    settings: Optional[ActionUrlSettings] = None
) -> str:
    """
    Substitute the discovery URL template of `action` for one file.

    Every non-empty value after the first is prefixed with '&' so the
    resulting query string is well formed.
    """
    settings = settings or ActionUrlSettings()
    url = action.urlsrc
    substituted = 0

    for placeholder in PLACEHOLDERS:
        if placeholder not in url:
            continue
        value = placeholder_value(placeholder, file_id, base_url, settings)
        if value and substituted > 0:
            value = "&" + value
        if value:
            substituted += 1
        url = url.replace(placeholder, value)

    return _LEFTOVER_PLACEHOLDER.sub("", url)


class ActionResolver:
    """
    Looks up which discovery actions apply to a file extension.
    """

    def __init__(self, action_cache: TtlCache[List[ActionDescriptor]], settings: Optional[ActionUrlSettings] = None):
        self.action_cache = action_cache
        self.settings = settings or ActionUrlSettings()

    async def actions_for(self, file_name: str) -> List[ActionDescriptor]:
        """
        Actions matching the extension of `file_name`, default action last.
        """
        extension = file_name.rsplit(".", 1)[-1].lower()
        actions = await self.action_cache.get()
        matching = [action for action in actions if action.ext == extension]
        return sorted(matching, key=lambda action: action.is_default)

    async def find_action(self, file_name: str, name: str) -> Optional[ActionDescriptor]:
        for action in await self.actions_for(file_name):
            if action.name == name:
                return action
        return None

    def action_url(self, action: ActionDescriptor, file_id: str, base_url: str) -> str:
        return build_action_url(action, file_id, base_url, self.settings)
