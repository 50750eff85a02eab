"""macOS foreground window sampler.

Returns the frontmost application's name and the title of its top
on-screen window. Chromium browsers often expose no window title to
Quartz, so their active tab title is fetched via AppleScript instead.
"""

import logging
import subprocess

import Quartz
from AppKit import NSWorkspace

import memento.config as config

log = logging.getLogger(__name__)

_CHROMIUM_TAB_SCRIPTS = {
    "com.google.Chrome": 'tell application "Google Chrome" to get title of active tab of front window',
    "company.thebrowser.Browser": 'tell application "Arc" to get title of active tab of front window',
    "com.brave.Browser": 'tell application "Brave Browser" to get title of active tab of front window',
}


def _get_chromium_tab_title(bundle_id: str) -> str:
    """Get active tab title from a Chromium browser via AppleScript."""
    script = _CHROMIUM_TAB_SCRIPTS.get(bundle_id)
    if not script:
        return ""
    try:
        result = subprocess.run(
            ["osascript", "-e", script],
            capture_output=True, text=True, timeout=config.CHROMIUM_TAB_TIMEOUT,
        )
        return result.stdout.strip() if result.returncode == 0 else ""
    except (subprocess.TimeoutExpired, OSError):
        return ""


def _get_frontmost_window_title() -> str:
    """Title of the first normal-layer on-screen window."""
    windows = Quartz.CGWindowListCopyWindowInfo(
        Quartz.kCGWindowListOptionOnScreenOnly | Quartz.kCGWindowListExcludeDesktopElements,
        Quartz.kCGNullWindowID,
    )
    if not windows:
        return ""
    for win in windows:
        if win.get(Quartz.kCGWindowLayer, -1) == 0:
            return win.get(Quartz.kCGWindowName, "") or ""
    return ""


def sample_foreground() -> tuple[str, str] | None:
    """Return (app, title) of the focused window, or None if nothing has focus."""
    active = NSWorkspace.sharedWorkspace().activeApplication()
    if not active:
        return None

    app_name = str(active.get("NSApplicationName", "") or "")
    if not app_name:
        return None
    bundle_id = str(active.get("NSApplicationBundleIdentifier", "") or "")

    title = str(_get_frontmost_window_title())
    if not title and bundle_id in _CHROMIUM_TAB_SCRIPTS:
        title = _get_chromium_tab_title(bundle_id)
    return app_name, title
