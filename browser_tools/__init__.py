# -*- coding: utf-8 -*-
"""Browser tools: session acquisition, anchor navigation, challenge handling"""

from .session import BrowserConnectionError, BrowserSession, BrowserSessionManager
from .navigation import (
    NEW_TAB,
    SAME_TAB,
    AnchorNavigator,
    NavigationTimeout,
    NewTabNavigator,
    SameTabNavigator,
    get_navigator,
    require_page,
)
from .challenge import ChallengeError, ChallengeHandler, ChallengeState
from .manual import wait_for_headful_browser, wait_for_user_signal
from . import utils

__all__ = [
    "BrowserConnectionError",
    "BrowserSession",
    "BrowserSessionManager",
    "NEW_TAB",
    "SAME_TAB",
    "AnchorNavigator",
    "NavigationTimeout",
    "NewTabNavigator",
    "SameTabNavigator",
    "get_navigator",
    "require_page",
    "ChallengeError",
    "ChallengeHandler",
    "ChallengeState",
    "wait_for_headful_browser",
    "wait_for_user_signal",
    "utils",
]
