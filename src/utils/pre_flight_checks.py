import logging

import requests

from src.utils.categories import TARGETS

logger = logging.getLogger(__name__)


class PreFlightCheckError(Exception):
    """Custom exception for pre-flight check failures."""
    pass


def run_strapi_pre_flight_checks(config: dict, session=None):
    """
    Verifies that the Strapi instance is reachable and that the API token can
    read every target collection.

    Args:
        config: The application configuration dictionary.
        session: Optional ``requests.Session`` used for the checks.

    Raises:
        PreFlightCheckError: If any check fails.
    """
    logger.info("Running pre-flight checks...")

    strapi = config.get("strapi", {})
    api_token = strapi.get("api_token")
    base_url = (strapi.get("base_url") or "http://localhost:1337").rstrip("/")
    timeout = float(strapi.get("timeout") or 10)
    http = session or requests

    if not api_token:
        raise PreFlightCheckError("STRAPI_API_TOKEN is required. Set it in your .env file or the config file.")

    headers = {
        "Authorization": f"Bearer {api_token}",
    }

    for target in TARGETS.values():
        url = f"{base_url}/api/{target.collection}"
        try:
            response = http.get(url, headers=headers, params={"pagination[pageSize]": 1}, timeout=timeout)
        except requests.RequestException as e:
            raise PreFlightCheckError(f"Network error while connecting to Strapi at {base_url}: {e}")
        if response.status_code in (401, 403):
            raise PreFlightCheckError(
                f"The API token cannot read '{target.collection}' ({response.status_code}). "
                "Check the token and the collection permissions."
            )
        if response.status_code == 404:
            raise PreFlightCheckError(f"Collection '{target.collection}' does not exist on {base_url}.")
        if not 200 <= response.status_code < 300:
            raise PreFlightCheckError(
                f"Unexpected answer from {url}: {response.status_code} {response.text[:200]}"
            )

    logger.info("Pre-flight checks passed successfully.")
