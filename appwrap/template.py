"""Expo app configuration for the WebView template.

The template app reads its target website from ``expo.extra.websiteUrl`` and
registers for push notifications with ``expo.extra.eas.projectId``. At build
time the same values arrive as APP_NAME, APP_PACKAGE and WEBSITE_URL; this
module renders the equivalent static ``app.json`` for local builds.
"""

import json
import re
from pathlib import Path
from typing import Any

from appwrap.types import BuildRequest

TEMPLATE_VERSION = "1.0.0"

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Derive an Expo slug from an app name.

    Args:
        name: Display name.

    Returns:
        Lowercase slug of [a-z0-9-], never empty.
    """
    slug = _SLUG_INVALID.sub("-", name.lower()).strip("-")
    return slug or "app"


def render_app_config(
    request: BuildRequest,
    project_id: str | None = None,
    version: str = TEMPLATE_VERSION,
) -> dict[str, Any]:
    """Render the ``app.json`` document for a wrapper app.

    Args:
        request: Validated build request.
        project_id: EAS project id; enables push registration and updates.
        version: App version string.

    Returns:
        app.json content as a dictionary.
    """
    extra: dict[str, Any] = {"websiteUrl": request.website_url}
    expo: dict[str, Any] = {
        "name": request.app_name,
        "slug": slugify(request.app_name),
        "version": version,
        "orientation": "portrait",
        "icon": "./assets/icon.png",
        "splash": {
            "image": "./assets/splash.png",
            "resizeMode": "contain",
            "backgroundColor": "#ffffff",
        },
        "android": {
            "package": request.package_name,
            "adaptiveIcon": {
                "foregroundImage": "./assets/adaptive-icon.png",
                "backgroundColor": "#ffffff",
            },
            "permissions": ["INTERNET", "NOTIFICATIONS"],
        },
        "plugins": ["expo-notifications", "expo-updates"],
        "runtimeVersion": {"policy": "appVersion"},
        "extra": extra,
    }
    if project_id:
        extra["eas"] = {"projectId": project_id}
        expo["updates"] = {"url": f"https://u.expo.dev/{project_id}"}
    return {"expo": expo}


def write_app_config(config: dict[str, Any], path: Path) -> Path:
    """Write an app.json document.

    Args:
        config: Output of render_app_config.
        path: Destination file (parents are created).

    Returns:
        The written path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")
    return path


__all__ = ["render_app_config", "slugify", "write_app_config"]
