"""
Device and location metadata recorded on each session.

Parsing is best-effort: a user agent or IP that cannot be resolved yields the
"Unknown ..." placeholders, and lookup failures are logged, never raised, so
metadata collection can not fail a login.
"""

import ipaddress
from dataclasses import dataclass
from pathlib import Path

import geoip2.database
import geoip2.errors
from fastapi import Request
from user_agents import parse as parse_user_agent  # type: ignore[import-untyped]

from app.config import settings
from app.core.auth import get_client_ip, get_user_agent
from app.core.logging import get_logger

logger = get_logger(__name__)

UNKNOWN_OS = "Unknown OS"
UNKNOWN_BROWSER = "Unknown Browser"
UNKNOWN_LOCATION = "Unknown Location"


@dataclass(frozen=True)
class SessionMetadata:
    ip_address: str
    os: str = UNKNOWN_OS
    browser: str = UNKNOWN_BROWSER
    location: str = UNKNOWN_LOCATION


def describe_device(user_agent: str) -> tuple[str, str]:
    """
    Parse a user agent into display names.

    Returns:
        Tuple of (os, browser), e.g. ("Windows 10", "Chrome")
    """
    if not user_agent:
        return UNKNOWN_OS, UNKNOWN_BROWSER

    try:
        ua = parse_user_agent(user_agent)
    except Exception as e:
        logger.warning("user_agent_parse_failed", error=str(e))
        return UNKNOWN_OS, UNKNOWN_BROWSER

    # ua-parser reports unrecognized families as "Other"
    os_name = ua.os.family if ua.os.family and ua.os.family != "Other" else None
    if os_name and ua.os.version_string:
        os_name = f"{os_name} {ua.os.version_string}"

    browser = ua.browser.family if ua.browser.family and ua.browser.family != "Other" else None

    return os_name or UNKNOWN_OS, browser or UNKNOWN_BROWSER


def is_public_ip(ip_address: str) -> bool:
    """Private, loopback and malformed addresses have no meaningful location."""
    try:
        ip = ipaddress.ip_address(ip_address)
    except ValueError:
        return False
    return not (
        ip.is_private or ip.is_loopback or ip.is_reserved or ip.is_link_local or ip.is_multicast
    )


class GeoLocator:
    """
    City-level IP geolocation using a MaxMind GeoLite2-City database.

    The reader is opened on first use. Without a configured or readable
    database every lookup returns "Unknown Location".
    """

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path
        self._reader: geoip2.database.Reader | None = None
        self._unavailable = False

    def _get_reader(self) -> geoip2.database.Reader | None:
        if self._reader is not None or self._unavailable:
            return self._reader

        if not self._db_path or not Path(self._db_path).exists():
            if self._db_path:
                logger.warning("geoip_database_not_found", db_path=self._db_path)
            self._unavailable = True
            return None

        try:
            self._reader = geoip2.database.Reader(self._db_path)
        except Exception as e:
            logger.warning("geoip_database_load_failed", db_path=self._db_path, error=str(e))
            self._unavailable = True
            return None

        logger.info("geoip_database_loaded", db_path=self._db_path)
        return self._reader

    def locate(self, ip_address: str) -> str:
        """
        Resolve an IP to "City, CC" (or "CC" when the city is unknown).
        """
        if not is_public_ip(ip_address):
            return UNKNOWN_LOCATION

        reader = self._get_reader()
        if reader is None:
            return UNKNOWN_LOCATION

        try:
            response = reader.city(ip_address)
        except geoip2.errors.AddressNotFoundError:
            return UNKNOWN_LOCATION
        except Exception as e:
            logger.warning("geoip_lookup_failed", ip_address=ip_address, error=str(e))
            return UNKNOWN_LOCATION

        city = response.city.name
        country_code = response.country.iso_code
        if city and country_code:
            return f"{city}, {country_code}"
        return country_code or UNKNOWN_LOCATION

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None


geo_locator = GeoLocator(settings.GEOIP_DB_PATH)


def collect_session_metadata(request: Request, locator: GeoLocator = geo_locator) -> SessionMetadata:
    """Gather IP, OS, browser and location for a new session."""
    ip_address = get_client_ip(request)
    os_name, browser = describe_device(get_user_agent(request))
    return SessionMetadata(
        ip_address=ip_address,
        os=os_name,
        browser=browser,
        location=locator.locate(ip_address),
    )
