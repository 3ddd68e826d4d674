# snapcaption_backend/services/api_client.py
"""
Async Python client for the SnapCaption REST API.

``SnapCaptionClient`` wraps the HTTP endpoints and keeps the bearer token
and its expiry in a client-side key/value store. ``ClientSession`` ties a
client to a ``SessionManager`` (inactivity logout) and a ``TokenManager``
(server token expiry) so that every way a session can end goes through
one logout path.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional

import httpx

from config import logger
from services.client_storage import KeyValueStorage, MemoryStorage
from services.session_manager import SessionManager
from services.token_manager import TOKEN_EXPIRY_KEY, TokenManager

AUTH_TOKEN_KEY = "auth_token"
DEFAULT_BASE_URL = "http://localhost:3000"


class ApiError(Exception):
    def __init__(self, status_code: int, payload: Any):
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"API request failed with status {status_code}: {payload}")


class SnapCaptionClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        storage: Optional[KeyValueStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.storage = storage if storage is not None else MemoryStorage()
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "SnapCaptionClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # --- plumbing ---

    @property
    def token(self) -> Optional[str]:
        return self.storage.get_item(AUTH_TOKEN_KEY)

    def _headers(self) -> Dict[str, str]:
        token = self.token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = await self._http.request(method, path, headers=self._headers(), **kwargs)
        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        if response.status_code >= 400:
            raise ApiError(response.status_code, payload)
        return payload

    def _store_auth(self, payload: Dict[str, Any]) -> None:
        if payload.get("token"):
            self.storage.set_item(AUTH_TOKEN_KEY, payload["token"])
        if payload.get("tokenExpiry"):
            self.storage.set_item(TOKEN_EXPIRY_KEY, payload["tokenExpiry"])

    def clear_auth(self) -> None:
        self.storage.remove_item(AUTH_TOKEN_KEY)
        self.storage.remove_item(TOKEN_EXPIRY_KEY)

    # --- auth ---

    async def register(self, username: str, password: str) -> Dict[str, Any]:
        payload = await self._request(
            "POST", "/api/auth/register", json={"username": username, "password": password}
        )
        self._store_auth(payload)
        return payload

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        payload = await self._request(
            "POST", "/api/auth/login", json={"username": username, "password": password}
        )
        self._store_auth(payload)
        return payload

    async def logout(self) -> None:
        """Server logout; local credentials are dropped even if the server call fails."""
        try:
            if self.token:
                await self._request("POST", "/api/auth/logout")
        except (ApiError, httpx.HTTPError) as e:
            logger.warning(f"Server logout failed (clearing local session anyway): {e}")
        finally:
            self.clear_auth()

    async def current_user(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/auth/user")

    # --- posts ---

    async def create_post(
        self,
        image: bytes,
        filename: str = "image.jpg",
        content_type: str = "image/jpeg",
        vibe: Optional[str] = None,
        extra_prompt: Optional[str] = None,
        language: str = "en",
        category: str = "Personal",
        tags: Optional[List[str]] = None,
        is_public: bool = False,
    ) -> Dict[str, Any]:
        form = {
            "language": language,
            "category": category,
            "isPublic": "true" if is_public else "false",
        }
        if vibe:
            form["vibe"] = vibe
        if extra_prompt:
            form["extraPrompt"] = extra_prompt
        if tags:
            form["tags"] = ",".join(tags)

        return await self._request(
            "POST",
            "/api/posts/",
            data=form,
            files={"image": (filename, image, content_type)},
        )

    async def list_posts(self, **filters: Any) -> Dict[str, Any]:
        params = {k: v for k, v in filters.items() if v is not None}
        return await self._request("GET", "/api/posts/", params=params)

    async def get_shared_post(self, post_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/posts/shared/{post_id}")

    async def get_stats(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/posts/stats")

    async def update_post(self, post_id: str, **fields: Any) -> Dict[str, Any]:
        return await self._request("PUT", f"/api/posts/{post_id}", json=fields)

    async def bulk_update_posts(self, post_ids: List[str], **updates: Any) -> Dict[str, Any]:
        return await self._request(
            "PUT", "/api/posts/bulk", json={"postIds": post_ids, "updates": updates}
        )

    async def delete_post(self, post_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/api/posts/{post_id}")

    async def delete_all_posts(self) -> Dict[str, Any]:
        return await self._request("DELETE", "/api/posts/")

    # --- user ---

    async def get_profile(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/user/profile")

    async def update_preferences(self, **preferences: Any) -> Dict[str, Any]:
        return await self._request("PUT", "/api/user/preferences", json=preferences)


class ClientSession:
    """Runs the inactivity and token-expiry watchers for a logged-in client."""

    def __init__(
        self,
        client: SnapCaptionClient,
        session_manager: Optional[SessionManager] = None,
        token_manager: Optional[TokenManager] = None,
        on_logged_out: Optional[Callable[[str], Any]] = None,
        on_warning: Optional[Callable[[int], Any]] = None,
    ):
        self.client = client
        self.session_manager = session_manager or SessionManager(storage=client.storage)
        self.token_manager = token_manager or TokenManager(storage=client.storage)
        self.on_logged_out = on_logged_out
        self.on_warning = on_warning
        self.logout_task: Optional[asyncio.Task] = None
        self._ended = False

    async def start(self, start_timer: bool = True) -> None:
        await self.session_manager.init(
            on_logout=self._schedule_end,
            on_warning=self.on_warning,
        )
        self.token_manager.init(on_token_expired=lambda: self._schedule_end("token_expired"))
        if start_timer:
            self.session_manager.start_session()

    def extend(self) -> bool:
        return self.session_manager.extend_session()

    def _schedule_end(self, reason: str) -> None:
        # timer callbacks are synchronous; the HTTP logout runs as a task
        if self.logout_task is None:
            self.logout_task = asyncio.ensure_future(self.end(reason))

    async def end(self, reason: str) -> None:
        if self._ended:
            return
        self._ended = True
        self.session_manager.destroy()
        self.token_manager.destroy()
        await self.client.logout()
        logger.info(f"Client session ended ({reason})")
        if self.on_logged_out:
            self.on_logged_out(reason)

    async def close(self) -> None:
        """Stops the watchers; logs out first when auto_logout_on_close is set."""
        if self.session_manager.settings.auto_logout_on_close:
            await self.end("close")
            return
        self.session_manager.destroy()
        self.token_manager.destroy()
