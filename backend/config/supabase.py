"""
Supabase Configuration and Utilities
"""
import os
import logging
import httpx
from typing import Optional, Dict, Any, List, Tuple, Union
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


class SupabaseError(Exception):
    """Error returned by the Supabase REST or Auth API"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(response: httpx.Response) -> str:
    """Pull the human readable message out of a Supabase error body"""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return response.text or f"HTTP {response.status_code}"


def _filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class SupabaseClient:
    """Thin async client for the Supabase PostgREST and Auth endpoints"""

    def __init__(self, url: str, key: str):
        self.url = url.rstrip('/')
        self.key = key

    def headers_for(self, access_token: Optional[str] = None) -> Dict[str, str]:
        """Headers for a request, authorized as the user when a token is given (RLS)"""
        return {
            'apikey': self.key,  # Always include API key
            'Authorization': f'Bearer {access_token or self.key}',
            'Content-Type': 'application/json',
            'Prefer': 'return=representation'
        }

    async def _request(
        self,
        method: str,
        url: str,
        access_token: Optional[str] = None,
        json: Optional[Union[Dict, List]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.request(
                    method, url, headers=self.headers_for(access_token), json=json, params=params
                )
        except httpx.RequestError as e:
            raise SupabaseError(f"Network error: {e}", status_code=503) from e

        if response.status_code >= 400:
            raise SupabaseError(_error_message(response), status_code=response.status_code)

        return response.json() if response.text else None

    async def query(
        self,
        table: str,
        method: str = 'GET',
        data: Optional[Union[Dict, List]] = None,
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[Tuple[str, str]] = None,
        limit: Optional[int] = None,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Execute a query on a Supabase table and return the affected rows"""
        if method not in ('GET', 'POST', 'PATCH', 'DELETE'):
            raise ValueError(f"Unsupported method: {method}")

        # Equality filters as query parameters
        params = {key: f"eq.{_filter_value(value)}" for key, value in (filters or {}).items()}
        if order:
            column, direction = order
            params['order'] = f"{column}.{direction}"
        if limit is not None:
            params['limit'] = str(limit)

        result = await self._request(
            method, f"{self.url}/rest/v1/{table}", access_token=access_token, json=data, params=params
        )
        if result is None:
            return []
        return result if isinstance(result, list) else [result]

    async def auth_signup(self, email: str, password: str, user_metadata: Optional[Dict] = None) -> Dict[str, Any]:
        """Sign up a new user"""
        data = {
            'email': email,
            'password': password
        }
        if user_metadata:
            data['data'] = user_metadata
        return await self._request('POST', f"{self.url}/auth/v1/signup", json=data)

    async def auth_signin(self, email: str, password: str) -> Dict[str, Any]:
        """Sign in a user with the password grant"""
        data = {
            'email': email,
            'password': password
        }
        return await self._request('POST', f"{self.url}/auth/v1/token", json=data, params={'grant_type': 'password'})

    async def auth_signout(self, access_token: str) -> None:
        await self._request('POST', f"{self.url}/auth/v1/logout", access_token=access_token)

    async def auth_get_user(self, access_token: str) -> Dict[str, Any]:
        return await self._request('GET', f"{self.url}/auth/v1/user", access_token=access_token)

    async def auth_recover(self, email: str, redirect_to: Optional[str] = None) -> None:
        """Send a password recovery email"""
        params = {'redirect_to': redirect_to} if redirect_to else None
        await self._request('POST', f"{self.url}/auth/v1/recover", json={'email': email}, params=params)

    async def auth_update_user(self, access_token: str, attributes: Dict[str, Any]) -> Dict[str, Any]:
        """Update the signed-in user's password or metadata"""
        return await self._request('PUT', f"{self.url}/auth/v1/user", access_token=access_token, json=attributes)


class SupabaseConfig:
    """Supabase configuration class"""

    def __init__(self):
        self.url: str = os.getenv("SUPABASE_URL", "")
        self.key: str = os.getenv("SUPABASE_ANON_KEY", "")
        self.service_key: str = os.getenv("SUPABASE_SERVICE_KEY", "")

        if not self.url or not self.key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set in environment variables")

    def get_client(self, use_service_key: bool = False) -> SupabaseClient:
        """Create and return Supabase client"""
        key = self.service_key if use_service_key and self.service_key else self.key
        return SupabaseClient(self.url, key)


# Global Supabase client instances
_config: Optional[SupabaseConfig] = None
_client: Optional[SupabaseClient] = None
_service_client: Optional[SupabaseClient] = None


def get_supabase_config() -> SupabaseConfig:
    """Get Supabase configuration singleton"""
    global _config
    if _config is None:
        _config = SupabaseConfig()
    return _config


def get_supabase_client() -> SupabaseClient:
    """Get Supabase client for regular operations"""
    global _client
    if _client is None:
        config = get_supabase_config()
        _client = config.get_client()
    return _client


def get_supabase_service_client() -> SupabaseClient:
    """Get Supabase client with service key for admin operations"""
    global _service_client
    if _service_client is None:
        config = get_supabase_config()
        if not config.service_key:
            raise ValueError("SUPABASE_SERVICE_KEY must be set for service operations")
        _service_client = config.get_client(use_service_key=True)
    return _service_client


async def test_connection() -> bool:
    """Test Supabase connection"""
    if not os.getenv("SUPABASE_URL") or not os.getenv("SUPABASE_ANON_KEY"):
        logger.warning("Supabase credentials not configured")
        return False

    try:
        client = get_supabase_client()
        await client.query("profiles", "GET", limit=1)
        logger.info("Supabase connection successful")
        return True
    except SupabaseError as e:
        logger.error(f"Supabase connection failed: {e}")
        return False
