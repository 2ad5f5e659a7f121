"""User-agent fingerprinting for session device descriptors."""
from functools import lru_cache
import logging
from pathlib import Path

import yaml

from sessionguard.config import get_settings
from sessionguard.schemas.device import DeviceInfo, DeviceType

logger = logging.getLogger(__name__)
settings = get_settings()

UNKNOWN = "Unknown"
MAX_USER_AGENT_LENGTH = 2048

DEVICE_ICONS = {
    "mobile": "📱",
    "tablet": "📱",
    "desktop": "💻",
}


@lru_cache
def load_device_rules(rules_path: Path | None = None) -> dict:
    """Load the ordered keyword rules from YAML.
    
    A missing or unreadable rule file leaves every lookup at its default
    rather than failing session creation.
    """
    rules_path = rules_path or settings.device_rules_path
    try:
        with open(rules_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load device rules from {rules_path}: {e}")
        return {"os": [], "browser": [], "device_type": {}}

    return {
        "os": data.get("os", []),
        "browser": data.get("browser", []),
        "device_type": data.get("device_type", {}),
    }


def _first_match(ua: str, rules: list[dict]) -> str:
    for rule in rules:
        if not any(keyword in ua for keyword in rule.get("any", [])):
            continue
        if any(keyword in ua for keyword in rule.get("none", [])):
            continue
        return rule["name"]
    return UNKNOWN


def _detect_device_type(ua: str, markers: dict) -> DeviceType:
    is_tablet = any(marker in ua for marker in markers.get("tablet", []))
    is_mobile = any(marker in ua for marker in markers.get("mobile", []))

    device_type: DeviceType = "desktop"
    if is_mobile and not is_tablet:
        device_type = "mobile"
    # Tablet UAs often carry mobile markers too; tablet wins.
    if is_tablet:
        device_type = "tablet"
    return device_type


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    """Parse a raw user agent into a device descriptor.
    
    Never raises. Unrecognized input yields an Unknown browser and OS on a
    desktop device.
    """
    ua = (user_agent or "")[:MAX_USER_AGENT_LENGTH].lower()
    rules = load_device_rules()

    os_name = _first_match(ua, rules["os"])
    browser = _first_match(ua, rules["browser"])
    device_type = _detect_device_type(ua, rules["device_type"])

    return DeviceInfo(
        device_name=f"{browser} on {os_name}",
        device_type=device_type,
        browser=browser,
        os=os_name,
    )


def get_device_icon(device_type: str) -> str:
    """Get the display icon for a device type."""
    return DEVICE_ICONS.get(device_type, "🖥️")


def get_short_device_name(info: DeviceInfo) -> str:
    """Get a compact one-line device description."""
    return f"{get_device_icon(info.device_type)} {info.browser} • {info.os}"
