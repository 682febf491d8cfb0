import os
from typing import Dict, List, Optional

import requests

DEFAULT_API_URL = "http://localhost:5000"


class TradeAssistantClient:
    """Thin HTTP client for the trade assistant endpoints."""

    def __init__(self, base_url: Optional[str] = None, timeout: int = 30):
        self.base_url = (base_url or os.environ.get("TRADE_API_URL") or DEFAULT_API_URL).rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _get(self, path: str, params: Optional[Dict] = None):
        response = self.session.get(self._url(path), params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def _post(self, path: str, payload: Dict):
        response = self.session.post(self._url(path), json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def get_users(self) -> List[str]:
        return self._get("/api/users")

    def create_user(self, email: str, password: str) -> Dict:
        return self._post("/api/users", {"email": email, "password": password})

    def login(self, email: str, password: str) -> Dict:
        return self._post("/api/login", {"email": email, "password": password})

    def get_suppliers(self) -> List[Dict]:
        return self._get("/api/suppliers")

    def get_tariffs(self) -> Dict:
        return self._get("/api/tariffs")

    def get_ports(self) -> List[Dict]:
        return self._get("/api/ports")

    def get_destination_ports(self) -> List[Dict]:
        return self._get("/api/destination-ports")
