"""Matrix client-server API client used by the bot engine.

Thin aiohttp wrapper around the handful of endpoints the bot needs:
password login/logout, /sync, sending room messages, joining, leaving
and forgetting rooms, listing joined rooms and reading a room's
encryption state.

Public methods never raise on HTTP or network problems. They log the
failure and return False / None instead, which is what the sync loop
and the room lifecycle policy act on.

Key classes:
    MatrixClient: Session-owning client bound to one bot account.
"""

import asyncio
import itertools
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp
import structlog

from .. import __version__
from ..exceptions import ErrorCategory, MatrixRequestError
from ..plugin_base import Reply
from .models import SyncResult
from .sync import parse_sync_response

logger = structlog.get_logger("botvinnik.matrix")

API_PREFIX = "/_matrix/client/v3"
USER_AGENT = f"botvinnik/{__version__}"
HTML_FORMAT = "org.matrix.custom.html"


def _encode(value: str) -> str:
    """Percent-encode a room id or alias for use in a URL path."""
    return quote(value, safe="")


class MatrixClient:
    """Client for the Matrix homeserver the bot account lives on.

    Args:
        homeserver: Base URL of the homeserver, e.g. https://matrix.org.
        user_id: Full Matrix id of the bot account.
        password: Password of the bot account.
        sync_timeout_ms: Long-poll timeout passed to /sync.
        request_timeout: Total timeout of a single request in seconds.
        session: Optional pre-built aiohttp session (mainly for tests).
    """

    def __init__(
        self,
        homeserver: str,
        user_id: str,
        password: str,
        sync_timeout_ms: int = 0,
        request_timeout: float = 60,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.homeserver = homeserver.rstrip("/")
        self.user_id = user_id
        self._password = password
        self.sync_timeout_ms = sync_timeout_ms
        self.request_timeout = request_timeout
        self.session = session
        self._owns_session = session is None
        self.access_token: Optional[str] = None
        self.device_id: Optional[str] = None
        self._txn_counter = itertools.count()

    @property
    def is_logged_in(self) -> bool:
        return bool(self.access_token)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers={"User-Agent": USER_AGENT},
            )
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def __aenter__(self) -> "MatrixClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        auth: bool = True,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Perform one API request and return the decoded JSON body.

        Raises:
            MatrixRequestError: on connection problems, non-200 answers
                or bodies that are not JSON objects.
        """
        session = await self._ensure_session()
        headers = {}
        if auth:
            if not self.access_token:
                raise MatrixRequestError(
                    "Not logged in.", category=ErrorCategory.PERMANENT, path=path,
                )
            headers["Authorization"] = f"Bearer {self.access_token}"
        url = f"{self.homeserver}{API_PREFIX}{path}"
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.request_timeout)

        try:
            async with session.request(
                method, url, params=params, json=json,
                headers=headers, timeout=client_timeout,
            ) as resp:
                status = resp.status
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MatrixRequestError(
                f"Request failed: {type(e).__name__}: {e}",
                method=method, path=path,
            ) from e

        if status != 200:
            errcode = data.get("errcode") if isinstance(data, dict) else None
            error = data.get("error") if isinstance(data, dict) else None
            category = (
                ErrorCategory.TRANSIENT
                if status >= 500 or status == 429
                else ErrorCategory.PERMANENT
            )
            raise MatrixRequestError(
                error or f"HTTP status {status}",
                status=status, errcode=errcode, category=category,
                method=method, path=path,
            )
        if not isinstance(data, dict):
            raise MatrixRequestError(
                "Response is not a JSON object.", status=status,
                method=method, path=path,
            )
        return data

    # --- Session ---

    async def login(self) -> bool:
        """Log in with the account password and store the access token."""
        if self.is_logged_in:
            # A second login would leave a dangling session on the server.
            logger.error("login_rejected", reason="already_logged_in")
            return False

        payload = {
            "type": "m.login.password",
            "identifier": {"type": "m.id.user", "user": self.user_id},
            "password": self._password,
            "initial_device_display_name": f"botvinnik, version {__version__}",
        }
        try:
            data = await self._request("POST", "/login", json=payload, auth=False)
        except MatrixRequestError as e:
            logger.error("login_failed", error=e.message, status=e.status,
                         errcode=e.errcode)
            return False

        token = data.get("access_token")
        if not isinstance(token, str) or not token:
            logger.error("login_failed", error="response contains no access_token")
            return False
        self.access_token = token
        self.device_id = data.get("device_id")
        logger.info("login_successful", user_id=self.user_id,
                    device_id=self.device_id)
        return True

    async def logout(self) -> bool:
        """Invalidate the access token. Succeeds trivially when logged out."""
        if not self.is_logged_in:
            return True
        try:
            await self._request("POST", "/logout", json={})
        except MatrixRequestError as e:
            logger.error("logout_failed", error=e.message, status=e.status,
                         errcode=e.errcode)
            return False
        self.access_token = None
        self.device_id = None
        logger.info("logout_successful", user_id=self.user_id)
        return True

    # --- Sync ---

    async def sync(self, since: str = "") -> Optional[SyncResult]:
        """Fetch new events since the given batch token.

        Args:
            since: Cursor returned by the previous sync. Empty for the
                initial full sync.

        Returns:
            The parsed result, or None if the request failed.
        """
        params = {"timeout": str(self.sync_timeout_ms)}
        if since:
            params["since"] = since
        timeout = self.request_timeout + self.sync_timeout_ms / 1000
        try:
            data = await self._request("GET", "/sync", params=params, timeout=timeout)
            return parse_sync_response(data)
        except MatrixRequestError as e:
            logger.warning("sync_request_failed", error=e.message, status=e.status,
                           errcode=e.errcode, retryable=e.is_retryable,
                           incremental=bool(since))
            return None

    # --- Messages ---

    def _next_txn_id(self) -> str:
        return f"bvn{int(time.time() * 1000)}.{next(self._txn_counter)}"

    async def send_message(self, room_id: str, reply: Reply) -> bool:
        """Send a text message (optionally with HTML) to a room."""
        content: Dict[str, Any] = {"msgtype": "m.text", "body": reply.body}
        if reply.formatted_body:
            content["format"] = HTML_FORMAT
            content["formatted_body"] = reply.formatted_body
        path = (
            f"/rooms/{_encode(room_id)}/send/m.room.message/"
            f"{_encode(self._next_txn_id())}"
        )
        try:
            await self._request("PUT", path, json=content)
        except MatrixRequestError as e:
            logger.warning("send_failed", room_id=room_id, error=e.message,
                           status=e.status, errcode=e.errcode,
                           retryable=e.is_retryable)
            return False
        return True

    # --- Rooms ---

    async def _room_action(self, event: str, path: str, room_id: str) -> bool:
        try:
            await self._request("POST", path, json={})
        except MatrixRequestError as e:
            logger.warning(f"{event}_failed", room_id=room_id, error=e.message,
                           status=e.status, errcode=e.errcode)
            return False
        logger.info(event, room_id=room_id)
        return True

    async def join_room(self, room_id: str) -> bool:
        """Join a room the bot was invited to."""
        return await self._room_action(
            "room_join", f"/rooms/{_encode(room_id)}/join", room_id
        )

    async def leave_room(self, room_id: str) -> bool:
        return await self._room_action(
            "room_leave", f"/rooms/{_encode(room_id)}/leave", room_id
        )

    async def forget_room(self, room_id: str) -> bool:
        """Forget a room. Only possible after leaving it."""
        return await self._room_action(
            "room_forget", f"/rooms/{_encode(room_id)}/forget", room_id
        )

    async def joined_rooms(self) -> Optional[List[str]]:
        """Ids of all rooms the bot is a member of, or None on failure."""
        try:
            data = await self._request("GET", "/joined_rooms")
        except MatrixRequestError as e:
            logger.warning("joined_rooms_failed", error=e.message,
                           status=e.status, errcode=e.errcode)
            return None
        rooms = data.get("joined_rooms")
        if not isinstance(rooms, list):
            logger.warning("joined_rooms_failed", error="no joined_rooms list")
            return None
        return [r for r in rooms if isinstance(r, str)]

    async def encryption_algorithm(self, room_id: str) -> Optional[str]:
        """Read the m.room.encryption state of a room.

        Returns:
            The encryption algorithm of the room, an empty string if the
            room has no encryption state, or None if it could not be
            determined.
        """
        path = f"/rooms/{_encode(room_id)}/state/m.room.encryption/"
        try:
            data = await self._request("GET", path)
        except MatrixRequestError as e:
            # Only a Matrix M_NOT_FOUND proves the room has no encryption state.
            if e.status == 404 and e.errcode == "M_NOT_FOUND":
                return ""
            logger.warning("encryption_query_failed", room_id=room_id,
                           error=e.message, status=e.status, errcode=e.errcode)
            return None
        algorithm = data.get("algorithm")
        if not isinstance(algorithm, str) or not algorithm:
            logger.warning("encryption_query_failed", room_id=room_id,
                           error="encryption state without algorithm")
            return None
        return algorithm
