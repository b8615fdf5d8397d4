"""Per-site branding, feature toggles, and catalog location.

Each ``*.json`` file in the sites directory describes one site and is merged over
``SITE_DEFAULTS``. Sites are distinguished by ``basePath``; the one with an empty base
path serves the root.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

SITE_DEFAULTS: dict[str, Any] = {
    "id": "default",
    "name": "My Site",
    "shortName": "My Site",
    "tagline": "Welcome",
    "basePath": "",
    "dbFile": "database/catalog.sqlite",
    "favicon": None,
    "theme": {
        "light": {
            "primaryColor": "#4a7c9b",
            "primaryDark": "#3a6a87",
            "primaryLight": "#e8f1f6",
            "secondaryColor": "#6889a0",
            "successColor": "#4a9a6a",
            "dangerColor": "#c45c5c",
        },
        "dark": {
            "primaryColor": "#6a9fc0",
            "primaryDark": "#7ab0d0",
            "primaryLight": "#2a3a48",
            "secondaryColor": "#7a9ab5",
            "successColor": "#5aaa7a",
            "dangerColor": "#d06a6a",
        },
    },
    "features": {
        "qrCodes": True,
        "statistics": True,
        "admin": True,
        "search": True,
        "print": True,
        "download": True,
    },
    "labels": {
        "allSongs": "All Songs",
        "songLists": "Song Lists",
        "home": "Home",
        "adminPanel": "Admin Panel",
        "searchPlaceholder": "Search...",
        "searchHint": "Search by title or content",
        "shareThisPage": "Share this page",
        "shareThisList": "Share this list",
        "noSongsFound": "No items found",
        "emptyCatalog": "No items yet.",
        "emptyList": "This list is empty.",
        "print": "Print",
        "download": "Download",
        "copy": "Copy",
        "shareLink": "Share Link",
        "printAll": "Print All",
        "downloadAll": "Download All",
    },
}

# Theme keys mapped to the CSS custom properties the pages read.
_THEME_VARIABLES = (
    ("primaryColor", "--primary-color"),
    ("primaryDark", "--primary-dark"),
    ("primaryLight", "--primary-light"),
    ("secondaryColor", "--secondary-color"),
    ("successColor", "--success-color"),
    ("dangerColor", "--danger-color"),
)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping):
            current = result.get(key)
            result[key] = deep_merge(current if isinstance(current, Mapping) else {}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def normalize_base_path(value: Any) -> str:
    text = str(value or "").strip()
    if not text or text == "/":
        return ""
    text = text.rstrip("/")
    if not text.startswith("/"):
        text = "/" + text
    return text


def load_site_configs(sites_dir: str | Path) -> dict[str, dict[str, Any]]:
    """Load and merge every site file, keyed by site id. Bad files are skipped."""
    sites: dict[str, dict[str, Any]] = {}
    directory = Path(sites_dir)
    if not directory.is_dir():
        logger.warning("Sites directory not found: %s", directory)
        return sites

    for path in sorted(directory.glob("*.json")):
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Error loading site config %s: %s", path.name, exc)
            continue
        if not isinstance(raw, dict):
            logger.error("Error loading site config %s: expected an object", path.name)
            continue
        merged = deep_merge(SITE_DEFAULTS, raw)
        merged["id"] = str(raw.get("id") or path.stem)
        merged["basePath"] = normalize_base_path(merged.get("basePath"))
        sites[merged["id"]] = merged
        logger.info("Loaded site config: %s (%s)", merged["id"], merged["basePath"] or "/")
    return sites


def get_site_by_path(sites: Mapping[str, dict[str, Any]], request_path: str) -> Optional[dict[str, Any]]:
    for config in sites.values():
        base_path = config.get("basePath")
        if base_path and (request_path == base_path or request_path.startswith(base_path + "/")):
            return config
    for config in sites.values():
        if not config.get("basePath"):
            return config
    return next(iter(sites.values()), None)


def _css_block(selector: str, colors: Mapping[str, Any], indent: str = "") -> str:
    lines = [f"{indent}{selector} {{"]
    for key, variable in _THEME_VARIABLES:
        if colors.get(key):
            lines.append(f"{indent}    {variable}: {colors[key]};")
    lines.append(f"{indent}}}")
    return "\n".join(lines) + "\n"


def generate_theme_css(theme: Optional[Mapping[str, Any]]) -> str:
    """Render CSS variable overrides for the light, dark, and auto-dark color schemes."""
    if not theme:
        return ""
    css = ""
    light = theme.get("light")
    if light:
        css += _css_block(":root", light)
    dark = theme.get("dark")
    if dark:
        css += _css_block(":root.dark-mode", dark)
        css += "@media (prefers-color-scheme: dark) {\n"
        css += _css_block(":root:not(.light-mode):not(.dark-mode)", dark, indent="    ")
        css += "}\n"
    return css
