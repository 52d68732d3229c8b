"""Session controller: acquires, validates, persists and invalidates credentials.

Credential sources are tried in strict priority order on startup:

1. the OAuth redirect-callback credential in the current navigation target;
2. the persisted long-lived credential, when its client id is also stored;
3. the configured development override credential.

A non-override credential that the server explicitly rejects is discarded and
the override is tried next. One that cannot be checked because the server is
unreachable is also discarded, but does not fall back to the override. The
override itself never fails: an unverifiable override still yields a
``DevOverride`` session with a placeholder identity.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from packages.playshelf_client.events import SESSION_CHANGED, EventBus
from packages.playshelf_client.interceptor import UnauthorizedInterceptor
from packages.playshelf_client.navigation import Navigator, callback_credential, strip_query
from packages.playshelf_client.session.domain import (
    CHECKING,
    DEVELOPMENT_IDENTITY,
    SIGNED_OUT,
    Identity,
    Session,
    SessionPhase,
    SessionSnapshot,
)
from packages.playshelf_shared.config import ApiSettings, AuthSettings
from packages.playshelf_shared.http import (
    AsyncHttpClient,
    HttpClientError,
    HttpJsonDecodeError,
    decode_json,
)
from packages.playshelf_shared.logging import fields, get_logger, log_context
from packages.playshelf_shared.storage import (
    TWITCH_CLIENT_ID,
    TWITCH_TOKEN,
    TWITCH_USER_ID,
    KeyValueStorage,
    get_oauth_client,
)

_LOGGER = get_logger(__name__)

IDENTITY_PATH = "/auth/me"
AUTH_START_PATH = "/auth/twitch"
LOGOUT_PATH = "/auth/logout"


class ProbeOutcome(str, Enum):
    """Result class of one identity probe."""

    VALID = "valid"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """Identity probe outcome and, when valid, the returned identity."""

    outcome: ProbeOutcome
    identity: Identity | None = None


class SessionController:
    """Owns the session state machine and its login/logout surface."""

    def __init__(
        self,
        *,
        http: AsyncHttpClient,
        storage: KeyValueStorage,
        navigator: Navigator,
        bus: EventBus,
        api_settings: ApiSettings,
        auth_settings: AuthSettings,
        session: Session | None = None,
    ) -> None:
        self._http = http
        self._storage = storage
        self._navigator = navigator
        self._bus = bus
        self._api = api_settings
        self._auth = auth_settings
        self._session = Session() if session is None else session
        self._check_task: asyncio.Task[SessionSnapshot] | None = None
        self._checked = False
        self._background: set[asyncio.Task[None]] = set()

    @property
    def session(self) -> Session:
        return self._session

    @property
    def dev_token(self) -> str | None:
        """Return the configured development override credential, if any."""
        token = self._auth.dev_token.strip()
        return token or None

    def install(self, interceptor: UnauthorizedInterceptor) -> None:
        """Register this controller as the interceptor's unauthorized handler."""
        interceptor.set_handler(self.invalidate_from_interceptor)

    def auth_headers(self) -> dict[str, str]:
        """Return the bearer header for the current credential (empty when signed out)."""
        credential = self._session.credential
        if not credential:
            return {}
        return {self._api.token_header: credential}

    def get_api_token(self) -> str | None:
        """Return the best available credential: session, persisted, then override."""
        return self._session.credential or self._storage.get(TWITCH_TOKEN) or self.dev_token

    async def check_auth(self, *, force: bool = False) -> SessionSnapshot:
        """Resolve the session from the available credential sources.

        Concurrent calls share one in-flight check. Once a check has settled,
        later calls return the current snapshot unless ``force`` is set.
        """
        task = self._check_task
        if task is None or task.done():
            if self._checked and not force:
                return self._session.snapshot
            task = asyncio.get_running_loop().create_task(self._run_check())
            self._check_task = task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                # Aborted by logout or close, which already settled the session.
                return self._session.snapshot
            raise

    async def login(self, *, force_reverify: bool = False) -> str | None:
        """Start the OAuth flow and redirect to the authorization URL.

        Returns ``None`` without side effects when no OAuth client id/secret
        is configured; the caller is expected to ask for them.
        """
        oauth_client = get_oauth_client(self._storage)
        if oauth_client is None:
            _LOGGER.info("login skipped: OAuth client id/secret not configured")
            return None
        client_id, client_secret = oauth_client
        try:
            data = await self._http.post_json(
                AUTH_START_PATH,
                json={
                    "clientId": client_id,
                    "clientSecret": client_secret,
                    "forceVerify": force_reverify,
                },
            )
        except HttpClientError as exc:
            _LOGGER.warning("failed to start login", exc_info=exc)
            return None

        auth_url = data.get("authUrl") if isinstance(data, dict) else None
        if not isinstance(auth_url, str) or auth_url == "":
            _LOGGER.warning("login response did not include an authorization URL")
            return None
        self._navigator.redirect(auth_url)
        return auth_url

    def logout(self) -> None:
        """Forget the credential locally and ask the server to revoke it."""
        credential = self._session.credential
        self._abort_check()
        self._storage.remove_many(TWITCH_TOKEN, TWITCH_USER_ID)
        self._checked = True
        self._transition(SIGNED_OUT)
        if credential:
            self._revoke_later(credential)

    def invalidate_from_interceptor(self) -> None:
        """Log out and hard-reset navigation to the server URL."""
        self.logout()
        self._navigator.redirect(self._api.resolved_server_url)

    async def aclose(self) -> None:
        """Abort an in-flight check and wait for pending revoke calls."""
        self._abort_check()
        pending: list[asyncio.Task[object]] = list(self._background)
        if self._check_task is not None:
            pending.append(self._check_task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run_check(self) -> SessionSnapshot:
        with log_context({fields.OPERATION: "check_auth"}):
            self._transition(CHECKING)
            snapshot = await self._resolve()
            self._checked = True
            self._transition(snapshot)
            return snapshot

    async def _resolve(self) -> SessionSnapshot:
        candidate = self._consume_callback_credential()
        source = "callback"
        if candidate is None:
            candidate = self._persisted_credential()
            source = "persisted"

        if candidate is not None:
            if candidate == self.dev_token:
                return await self._validate_override(candidate)
            result = await self._probe(candidate)
            if result.outcome is ProbeOutcome.VALID:
                assert result.identity is not None
                return SessionSnapshot(
                    phase=SessionPhase.AUTHENTICATED,
                    identity=result.identity,
                    credential=candidate,
                )
            self._storage.remove_many(TWITCH_TOKEN, TWITCH_USER_ID)
            if result.outcome is ProbeOutcome.UNREACHABLE:
                _LOGGER.warning(
                    "credential could not be validated; discarded without fallback",
                    extra={fields.CREDENTIAL_SOURCE: source},
                )
                return SIGNED_OUT
            _LOGGER.info(
                "credential rejected by server; discarded",
                extra={fields.CREDENTIAL_SOURCE: source},
            )

        override = self.dev_token
        if override is not None:
            return await self._validate_override(override)
        return SIGNED_OUT

    def _consume_callback_credential(self) -> str | None:
        url = self._navigator.current_url()
        found = callback_credential(url)
        if found is None:
            return None
        token, user_id = found
        self._storage.set(TWITCH_TOKEN, token)
        self._storage.set(TWITCH_USER_ID, user_id)
        self._navigator.replace_url(strip_query(url))
        return token

    def _persisted_credential(self) -> str | None:
        token = self._storage.get(TWITCH_TOKEN)
        if not token:
            return None
        if not self._storage.get(TWITCH_CLIENT_ID):
            _LOGGER.info(
                "persisted credential ignored: no client id stored",
                extra={fields.CREDENTIAL_SOURCE: "persisted"},
            )
            return None
        return token

    async def _validate_override(self, token: str) -> SessionSnapshot:
        result = await self._probe(token)
        identity = result.identity
        if result.outcome is not ProbeOutcome.VALID or identity is None:
            _LOGGER.warning(
                "override credential not verified; using placeholder identity: outcome=%s",
                result.outcome.value,
                extra={fields.CREDENTIAL_SOURCE: "override"},
            )
            identity = DEVELOPMENT_IDENTITY
        return SessionSnapshot(
            phase=SessionPhase.DEV_OVERRIDE,
            identity=identity,
            credential=token,
        )

    async def _probe(self, credential: str) -> ProbeResult:
        headers = {self._api.token_header: credential}
        client_id = self._storage.get(TWITCH_CLIENT_ID)
        if client_id and credential != self.dev_token:
            headers[self._api.client_id_header] = client_id
        try:
            async with asyncio.timeout(self._auth.probe_timeout_seconds):
                response = await self._http.get(
                    IDENTITY_PATH, headers=headers, raise_for_status=False
                )
        except TimeoutError:
            _LOGGER.warning(
                "identity probe timed out after %.1fs", self._auth.probe_timeout_seconds
            )
            return ProbeResult(ProbeOutcome.UNREACHABLE)
        except HttpClientError as exc:
            _LOGGER.warning("identity probe failed", exc_info=exc)
            return ProbeResult(ProbeOutcome.UNREACHABLE)

        if not response.is_success:
            _LOGGER.info(
                "identity probe rejected credential",
                extra={fields.STATUS_CODE: response.status_code},
            )
            return ProbeResult(ProbeOutcome.REJECTED)
        try:
            identity = Identity.model_validate(decode_json(response))
        except (HttpJsonDecodeError, ValidationError) as exc:
            _LOGGER.warning("identity probe returned an unusable body", exc_info=exc)
            return ProbeResult(ProbeOutcome.REJECTED)
        return ProbeResult(ProbeOutcome.VALID, identity)

    def _abort_check(self) -> None:
        task = self._check_task
        if task is not None and not task.done():
            task.cancel()

    def _revoke_later(self, credential: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _LOGGER.info("no running event loop; server-side revoke skipped")
            return
        task = loop.create_task(self._revoke(credential))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _revoke(self, credential: str) -> None:
        try:
            await self._http.post(
                LOGOUT_PATH,
                headers={self._api.token_header: credential},
                raise_for_status=False,
            )
        except HttpClientError as exc:
            _LOGGER.info("logout call failed; credential cleared locally", exc_info=exc)

    def _transition(self, snapshot: SessionSnapshot) -> None:
        if not self._session._replace(snapshot):
            return
        identity = snapshot.identity
        _LOGGER.info(
            "session phase changed",
            extra={
                fields.PHASE: snapshot.phase.value,
                fields.IDENTITY_ID: None if identity is None else identity.id,
            },
        )
        self._bus.publish(SESSION_CHANGED, snapshot)
