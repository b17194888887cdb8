"""Configuration server client."""

import re
from typing import List, Optional
from urllib.parse import quote

import httpx

from .exceptions import (
    AuthenticationError,
    NetworkError,
    StoreError,
    ValidationError,
)


class ChefServerClient:
    """Async client for the data bag and search endpoints of a Chef server."""

    def __init__(self, base_url: str, client_name: str, token: str = None, timeout: float = 30.0,
                 transport: httpx.AsyncBaseTransport = None):
        """Initialize the client.

        Args:
            base_url: The base URL of the Chef server organization
            client_name: Name of the API client making requests
            token: Bearer token for authentication
            timeout: Request timeout in seconds
            transport: Optional transport, mostly for tests
        """
        self.base_url = base_url.rstrip("/")
        self.client_name = client_name
        headers = {"Accept": "application/json", "X-Ops-UserId": client_name}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def _validate_name(self, name: str) -> None:
        """Validate data bag and item name format."""
        if not name or len(name) > 255:
            raise ValidationError("Name must be 1-255 characters")
        if not re.match(r'^[\w.:-]+$', name):
            raise ValidationError("Name can only contain alphanumeric characters, underscores, colons, hyphens, and dots")

    def _handle_response(self, response: httpx.Response):
        """Handle HTTP response and raise appropriate exceptions."""
        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Request rejected for client '{self.client_name}': HTTP {response.status_code}",
                status_code=response.status_code,
            )
        elif response.status_code >= 400:
            try:
                error_data = response.json()
                message = error_data.get("error", f"HTTP {response.status_code}")
                if isinstance(message, list):
                    message = "; ".join(str(m) for m in message)
            except ValueError:
                message = f"HTTP {response.status_code}: {response.text}"
            raise StoreError(message, status_code=response.status_code)

        try:
            return response.json() if response.content else {}
        except ValueError as e:
            raise NetworkError(f"Failed to parse response: {e}")

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise NetworkError(f"Network error on {method} {path}: {e}")

    async def find_data_bag(self, name: str) -> Optional[List[str]]:
        """Return the item ids of a data bag, or None if it does not exist."""
        self._validate_name(name)
        response = await self._request("GET", f"/data/{quote(name)}")
        if response.status_code == 404:
            return None
        return list(self._handle_response(response))

    async def create_data_bag(self, name: str) -> bool:
        """Create a data bag; an existing bag is not an error."""
        self._validate_name(name)
        response = await self._request("POST", "/data", json={"name": name})
        if response.status_code == 409:
            return True
        self._handle_response(response)
        return True

    async def get_item(self, bag: str, item_id: str) -> Optional[dict]:
        """Get a data bag item, or None if it does not exist."""
        self._validate_name(bag)
        self._validate_name(item_id)
        response = await self._request("GET", f"/data/{quote(bag)}/{quote(item_id)}")
        if response.status_code == 404:
            return None
        return self._handle_response(response)

    async def create_item(self, bag: str, item: dict) -> bool:
        """Create a data bag item.

        Returns:
            False if an item with the same id already exists
        """
        self._validate_name(bag)
        response = await self._request("POST", f"/data/{quote(bag)}", json=item)
        if response.status_code == 409:
            return False
        self._handle_response(response)
        return True

    async def update_item(self, bag: str, item: dict) -> bool:
        """Overwrite an existing data bag item."""
        self._validate_name(bag)
        response = await self._request("PUT", f"/data/{quote(bag)}/{quote(item['id'])}", json=item)
        self._handle_response(response)
        return True

    async def delete_item(self, bag: str, item_id: str) -> bool:
        """Delete a data bag item.

        Returns:
            False if the item did not exist
        """
        self._validate_name(bag)
        self._validate_name(item_id)
        response = await self._request("DELETE", f"/data/{quote(bag)}/{quote(item_id)}")
        if response.status_code == 404:
            return False
        self._handle_response(response)
        return True

    async def search_nodes(self, query: str) -> List[dict]:
        """Run a node search and return the matching rows."""
        response = await self._request("GET", "/search/node", params={"q": query})
        data = self._handle_response(response)
        return data.get("rows", [])

    async def registered_as(self, hostname: str) -> Optional[str]:
        """Return the node name the given host is registered as, if any."""
        query = f"fqdn:{hostname} OR hostname:{hostname} OR ipaddress:{hostname}"
        rows = await self.search_nodes(query)
        if not rows:
            return None
        return rows[0].get("name")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
