"""DigitalOcean API client using raw REST API calls.

API Reference
=============

Base URL: https://api.digitalocean.com/v2
Auth: Authorization: Bearer <token>

Key Endpoints
-------------

Account:
    GET  /account                                   Account info (token check)

Droplets:
    GET  /droplets                                  List droplets (paginated)
    GET  /droplets/{id}                             Get droplet info
    GET  /droplets/{id}/snapshots                   List droplet snapshots (paginated)
    POST /droplets/{id}/actions                     Perform action (shutdown, snapshot)
    GET  /droplets/{id}/actions/{action_id}         Check action status

Errors
------
Failed requests return a JSON body like
``{"id": "unauthorized", "message": "Unable to authenticate you."}``.
The ``id`` is kept on the raised exception as ``error_id``.

Pagination
----------
Uses `page` and `per_page` query params (max 200/page).
This module auto-handles pagination by following `links.pages.next` URLs.
"""

from typing import Any

import requests

DEFAULT_API_BASE = "https://api.digitalocean.com/v2"

UNAUTHORIZED_ERROR_ID = "unauthorized"
UNPROCESSABLE_ERROR_ID = "unprocessable_entity"
ALREADY_POWERED_OFF_MESSAGE = "Droplet is already powered off."


class DigitalOceanAPIError(Exception):
    """Exception raised for DigitalOcean API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_id: str | None = None,
        provider_message: str | None = None,
    ):
        self.status_code = status_code
        self.error_id = error_id
        self.provider_message = provider_message
        super().__init__(message)

    @property
    def is_unauthorized(self) -> bool:
        """True when the API rejected the token."""
        return self.error_id == UNAUTHORIZED_ERROR_ID or self.status_code == 401

    @property
    def is_already_powered_off(self) -> bool:
        """True when a shutdown was refused because the droplet is already off."""
        return (
            self.error_id == UNPROCESSABLE_ERROR_ID
            and self.provider_message == ALREADY_POWERED_OFF_MESSAGE
        )


class DigitalOceanAPI:
    """Client for DigitalOcean REST API."""

    def __init__(self, token: str, api_base: str = DEFAULT_API_BASE, timeout: float = 30):
        """Initialize API client with authentication token."""
        self.token = token
        self.base_url = api_base.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }
        )

    @staticmethod
    def _validate_positive_int(value: int, name: str) -> None:
        """
        Validate that an integer ID is positive.

        Args:
            value: The integer to validate
            name: Name of the parameter (for error message)

        Raises:
            ValueError: If the value is not positive
        """
        if value <= 0:
            raise ValueError(f"{name} must be a positive integer, got: {value}")

    def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs,
    ) -> dict[str, Any]:
        """Make an API request."""
        url = f"{self.base_url}{endpoint}"
        kwargs.setdefault("timeout", self.timeout)

        try:
            response = self.session.request(method, url, **kwargs)
            response.raise_for_status()
            if response.status_code == 204 and response.text == "":
                return {}

            return response.json()
        except requests.exceptions.HTTPError as e:
            error_msg = f"API request failed: {e}"
            if e.response is not None:
                error_id = None
                provider_message = None
                try:
                    error_data = e.response.json()
                    if isinstance(error_data, dict):
                        error_id = error_data.get("id")
                        provider_message = error_data.get("message")
                        if provider_message:
                            error_msg = f"API error: {provider_message}"
                except ValueError:
                    pass
                raise DigitalOceanAPIError(
                    error_msg,
                    e.response.status_code,
                    error_id=error_id,
                    provider_message=provider_message,
                ) from e
            raise DigitalOceanAPIError(error_msg) from e
        except requests.exceptions.RequestException as e:
            raise DigitalOceanAPIError(f"Network error: {e}") from e

    def _get_paginated(
        self,
        endpoint: str,
        key: str,
        per_page: int = 200,
        extra_params: dict[str, str] | None = None,
        max_pages: int = 1000,
    ) -> list[dict[str, Any]]:
        """
        Fetch all pages of a paginated API endpoint.

        Args:
            endpoint: API endpoint to fetch
            key: Key in response containing the items (e.g., 'droplets', 'snapshots')
            per_page: Number of items per page (default 200, max 200)
            extra_params: Additional query parameters to include (safely encoded)
            max_pages: Maximum number of pages to fetch (default 1000, prevents DoS)

        Returns:
            List of all items across all pages

        Raises:
            DigitalOceanAPIError: If max_pages limit is reached
        """
        all_items = []
        page = 1

        while True:
            params: dict[str, str | int] = {"page": page, "per_page": per_page}
            if extra_params:
                params.update(extra_params)

            response = self._request("GET", endpoint, params=params)

            items = response.get(key, [])
            all_items.extend(items)

            links = response.get("links", {})
            pages = links.get("pages", {})

            # No "next" link means this was the last page
            if "next" not in pages:
                break

            if page >= max_pages:
                raise DigitalOceanAPIError(
                    f"Pagination limit reached: {max_pages} pages. "
                    "This may indicate an API issue or misconfiguration."
                )

            page += 1

        return all_items

    def get_account(self) -> dict[str, Any]:
        """
        Get account information.

        Used as a token check before any other call.

        Returns:
            Account object with details like email, droplet_limit, status, etc.
        """
        response = self._request("GET", "/account")
        return response.get("account", {})

    def list_droplets(self) -> list[dict[str, Any]]:
        """List all droplets in the account (handles pagination)."""
        return self._get_paginated("/droplets", "droplets")

    def get_droplet(self, droplet_id: int) -> dict[str, Any]:
        """
        Get droplet information by ID.

        Args:
            droplet_id: Droplet ID

        Returns:
            Droplet object

        Raises:
            ValueError: If droplet_id is not positive
        """
        self._validate_positive_int(droplet_id, "droplet_id")
        response = self._request("GET", f"/droplets/{droplet_id}")
        return response.get("droplet", {})

    def list_droplet_snapshots(self, droplet_id: int) -> list[dict[str, Any]]:
        """
        List the snapshots taken from a droplet (handles pagination).

        Args:
            droplet_id: Droplet ID

        Returns:
            List of snapshot objects with id, name, created_at, etc.

        Raises:
            ValueError: If droplet_id is not positive
        """
        self._validate_positive_int(droplet_id, "droplet_id")
        return self._get_paginated(f"/droplets/{droplet_id}/snapshots", "snapshots")

    def shutdown_droplet(self, droplet_id: int) -> dict[str, Any]:
        """
        Gracefully shut down a droplet.

        Args:
            droplet_id: Droplet ID

        Returns:
            Action object with id, status, etc.

        Raises:
            ValueError: If droplet_id is not positive
            DigitalOceanAPIError: If the shutdown request fails (including
                when the droplet is already powered off)
        """
        self._validate_positive_int(droplet_id, "droplet_id")
        payload = {"type": "shutdown"}
        response = self._request("POST", f"/droplets/{droplet_id}/actions", json=payload)
        return response.get("action", {})

    def create_snapshot(self, droplet_id: int, name: str) -> dict[str, Any]:
        """
        Create a snapshot of a droplet.

        Args:
            droplet_id: Droplet ID to snapshot
            name: Name for the snapshot

        Returns:
            Action object with id, status, etc.

        Raises:
            ValueError: If droplet_id is not positive
            DigitalOceanAPIError: If snapshot creation fails
        """
        self._validate_positive_int(droplet_id, "droplet_id")
        payload = {
            "type": "snapshot",
            "name": name,
        }
        response = self._request("POST", f"/droplets/{droplet_id}/actions", json=payload)
        return response.get("action", {})

    def get_droplet_action(self, droplet_id: int, action_id: int) -> dict[str, Any]:
        """
        Get the status of an action performed on a droplet.

        Args:
            droplet_id: Droplet ID
            action_id: Action ID

        Returns:
            Action object with id, status, type, etc.

        Raises:
            ValueError: If droplet_id or action_id is not positive
            DigitalOceanAPIError: If request fails
        """
        self._validate_positive_int(droplet_id, "droplet_id")
        self._validate_positive_int(action_id, "action_id")
        response = self._request("GET", f"/droplets/{droplet_id}/actions/{action_id}")
        return response.get("action", {})
