import ipaddress
import logging
from typing import Optional

import httpx
from flask import current_app

logger = logging.getLogger(__name__)


def _is_public(ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return addr.is_global


def _as_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_location(payload: dict) -> Optional[dict]:
    """Normalize an ipapi-style payload to {country, city, coordinates?}."""
    if not isinstance(payload, dict) or payload.get("error"):
        return None

    country = payload.get("country_name") or payload.get("country")
    city = payload.get("city")
    lat = _as_float(payload.get("latitude"))
    lon = _as_float(payload.get("longitude"))
    if not country and not city and lat is None:
        return None

    out = {"country": country, "city": city}
    if lat is not None and lon is not None:
        out["coordinates"] = {"latitude": lat, "longitude": lon}
    return out


def lookup_location(ip: str) -> Optional[dict]:
    """
    Coarse geolocation for an IP, or None.
    Never raises: a missing location must not stop an attempt being recorded.
    """
    url_template = current_app.config.get("GEOIP_LOOKUP_URL")
    if not url_template or not ip or not _is_public(ip):
        return None

    timeout = current_app.config.get("GEOIP_TIMEOUT_SECONDS", 2.0)
    try:
        url = url_template.format(ip=ip)
    except (KeyError, IndexError, ValueError) as exc:
        logger.error("GEOIP_LOOKUP_URL is not a valid template: %s", exc)
        return None

    try:
        resp = httpx.get(url, timeout=timeout)
        resp.raise_for_status()
        return parse_location(resp.json())
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        logger.info("Geolocation lookup failed for %s: %s", ip, exc)
        return None
