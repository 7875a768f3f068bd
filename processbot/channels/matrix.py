"""Matrix client-server API client (r0): login, room creation, invites, messages.

Request and response bodies are pydantic models so the wire field names
(`msgtype`, `room_alias`, `user_id`, ...) live in exactly one place.
"""

from __future__ import annotations

import uuid
from typing import Any, Literal
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from processbot.infra.errors import ChatError

logger = structlog.get_logger()


class ThirdPartyIdentifier(BaseModel):
    type: Literal["m.id.thirdparty"] = "m.id.thirdparty"
    medium: Literal["email"] = "email"
    address: str


class LoginRequest(BaseModel):
    type: Literal["m.login.password"] = "m.login.password"
    identifier: ThirdPartyIdentifier
    password: str


class LoginResponse(BaseModel):
    access_token: str


class CreateRoomRequest(BaseModel):
    room_alias: str = ""


class CreateRoomResponse(BaseModel):
    room_id: str


class InviteRequest(BaseModel):
    user_id: str


class TextMessage(BaseModel):
    msgtype: Literal["m.text"] = "m.text"
    body: str


class MatrixClient:
    """Matrix notifier. Authenticates with an access token, obtained via login() if needed."""

    def __init__(
        self,
        homeserver: str,
        *,
        access_token: str = "",
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base = f"{homeserver.rstrip('/')}/_matrix/client/r0"
        self._access_token = access_token
        self._client = httpx.AsyncClient(timeout=timeout_s, transport=transport)

    @property
    def is_authenticated(self) -> bool:
        return bool(self._access_token)

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(
        self, method: str, path: str, payload: BaseModel, *, auth: bool = True
    ) -> dict[str, Any]:
        headers = {}
        if auth:
            if not self._access_token:
                raise ChatError("Matrix client is not logged in", code="MATRIX_AUTH_FAILED")
            headers["Authorization"] = f"Bearer {self._access_token}"
        try:
            response = await self._client.request(
                method, f"{self._base}{path}", json=payload.model_dump(), headers=headers,
            )
        except httpx.HTTPError as e:
            raise ChatError(f"Matrix request {path} failed: {e}") from e
        if response.is_error:
            raise ChatError(
                f"Matrix request {path} returned {response.status_code}: {response.text[:200]}"
            )
        return response.json() if response.content else {}

    async def login(self, username: str, password: str) -> LoginResponse:
        """Password login with an email third-party identifier; stores the access token."""
        request = LoginRequest(identifier=ThirdPartyIdentifier(address=username), password=password)
        raw = await self._post("POST", "/login", request, auth=False)
        try:
            result = LoginResponse.model_validate(raw)
        except ValidationError as e:
            raise ChatError(f"Unexpected Matrix login response: {e}") from e
        self._access_token = result.access_token
        logger.info("matrix_logged_in", username=username)
        return result

    async def create_room(self, room_alias: str = "") -> CreateRoomResponse:
        raw = await self._post("POST", "/createRoom", CreateRoomRequest(room_alias=room_alias))
        try:
            return CreateRoomResponse.model_validate(raw)
        except ValidationError as e:
            raise ChatError(f"Unexpected Matrix createRoom response: {e}") from e

    async def invite(self, room_id: str, user_id: str) -> None:
        await self._post("POST", f"/rooms/{quote(room_id)}/invite", InviteRequest(user_id=user_id))

    async def send_message(self, room_id: str, body: str) -> None:
        txn_id = uuid.uuid4().hex
        await self._post(
            "PUT",
            f"/rooms/{quote(room_id)}/send/m.room.message/{txn_id}",
            TextMessage(body=body),
        )

    async def send_channel_message(self, channel_id: str, text: str) -> None:
        await self.send_message(channel_id, text)
