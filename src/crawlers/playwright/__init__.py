"""Playwright rendering resource."""

from .browser import BrowserResource, PageSession, build_launch_args, launch_chromium
from .pages import DEFAULT_POLICY, ResourcePolicy, SessionOptions, configure_page

__all__ = [
    "BrowserResource",
    "PageSession",
    "build_launch_args",
    "launch_chromium",
    "DEFAULT_POLICY",
    "ResourcePolicy",
    "SessionOptions",
    "configure_page",
]
