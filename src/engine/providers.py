"""Per-provider third-party authorization state.

Each provider (storage, source control, documents) runs the same state
machine, keyed by ProviderKey:

    UNKNOWN -> (probe) -> DISCONNECTED | CONNECTED
    DISCONNECTED -> CONNECTING -> AWAITING_REDIRECT | CONNECTED
    AWAITING_REDIRECT -> (redirect callback) -> CONNECTED | DISCONNECTED

AWAITING_REDIRECT never times out locally; only the redirect callback
(or an explicit disconnect) leaves it. A boolean "connected" hint per
provider is persisted so the next start can show a likely state before
the status probe answers. The hint is never trusted on its own.

Example:
    store = ProviderConnectionStore(client, HintStore(path), notices, navigate=typer.launch)
    store.consume_redirect(url)          # once per load
    await store.probe_all()
    await store.connect(ProviderKey.GITHUB)
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from src.cli.protocol import TaurusClient, TaurusClientError
from src.engine.hints import HintStore
from src.engine.notices import NoticeBoard

logger = logging.getLogger(__name__)


class ProviderKey(str, Enum):
    """External services that need their own delegated authorization."""

    GDRIVE = "gdrive"
    GITHUB = "github"
    GDOCS = "gdocs"
    GSHEETS = "gsheets"

    @property
    def label(self) -> str:
        return PROVIDER_LABELS[self]

    @property
    def hint_key(self) -> str:
        return f"{self.value}_connected"


PROVIDER_LABELS: dict[ProviderKey, str] = {
    ProviderKey.GDRIVE: "Google Drive",
    ProviderKey.GITHUB: "GitHub",
    ProviderKey.GDOCS: "Google Docs",
    ProviderKey.GSHEETS: "Google Sheets",
}


class ConnectionStatus(str, Enum):
    """Authorization state of one provider."""

    UNKNOWN = "unknown"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_REDIRECT = "awaiting_redirect"
    CONNECTED = "connected"


VALID_TRANSITIONS: dict[ConnectionStatus, list[ConnectionStatus]] = {
    ConnectionStatus.UNKNOWN: [
        ConnectionStatus.DISCONNECTED,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.CONNECTING,
    ],
    ConnectionStatus.DISCONNECTED: [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED],
    ConnectionStatus.CONNECTING: [
        ConnectionStatus.AWAITING_REDIRECT,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.DISCONNECTED,
    ],
    ConnectionStatus.AWAITING_REDIRECT: [
        ConnectionStatus.CONNECTED,
        ConnectionStatus.DISCONNECTED,
    ],
    ConnectionStatus.CONNECTED: [ConnectionStatus.DISCONNECTED, ConnectionStatus.CONNECTING],
}

# Query parameters the backend appends when redirecting back after OAuth.
REDIRECT_PARAMS = ("connection", "status", "message")


class InvalidStateTransition(Exception):
    """Raised when a provider would move to a state it cannot reach.

    Attributes:
        provider: Provider whose state was changing.
        current_state: State before the attempted change.
        attempted_state: Requested target state.
    """

    def __init__(
        self,
        provider: ProviderKey,
        current_state: ConnectionStatus,
        attempted_state: ConnectionStatus,
    ) -> None:
        self.provider = provider
        self.current_state = current_state
        self.attempted_state = attempted_state
        allowed = ", ".join(s.value for s in VALID_TRANSITIONS[current_state])
        super().__init__(
            f"{provider.value}: cannot transition from '{current_state.value}' "
            f"to '{attempted_state.value}'. Allowed: [{allowed}]"
        )


def strip_redirect_params(url: str) -> str:
    """Remove the redirect callback parameters from a URL.

    Other query parameters and the fragment are preserved.
    """
    parts = urlsplit(url)
    kept = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k not in REDIRECT_PARAMS
    ]
    return urlunsplit(parts._replace(query=urlencode(kept)))


class ProviderConnectionStore:
    """Owns ConnectionStatus for every ProviderKey.

    Each provider's hint is written only by that provider's probe,
    connect, disconnect, or redirect handling.
    """

    def __init__(
        self,
        client: TaurusClient,
        hints: HintStore,
        notices: NoticeBoard,
        navigate: Callable[[str], object] | None = None,
    ) -> None:
        """Initialize every provider as UNKNOWN.

        Args:
            client: Backend client.
            hints: Durable store for the per-provider connected hint.
            notices: Board for user-facing messages.
            navigate: Sends the user to an external authorization URL.
                None only logs the URL.
        """
        self._client = client
        self._hints = hints
        self._notices = notices
        self._navigate = navigate
        self._states: dict[ProviderKey, ConnectionStatus] = {
            key: ConnectionStatus.UNKNOWN for key in ProviderKey
        }
        self._redirect_consumed = False
        self.last_auth_url: dict[ProviderKey, str] = {}

    # --- Queries ---

    def status(self, provider: ProviderKey) -> ConnectionStatus:
        return self._states[provider]

    def snapshot(self) -> dict[ProviderKey, ConnectionStatus]:
        return dict(self._states)

    def hinted(self, provider: ProviderKey) -> bool:
        """Last persisted connected flag for the provider."""
        return self._hints.get(provider.hint_key)

    def is_connected(self, provider: ProviderKey) -> bool:
        """Best current belief that the provider is usable.

        CONNECTED is authoritative. While the state is still UNKNOWN (no
        probe has answered) the persisted hint stands in.
        """
        state = self._states[provider]
        if state is ConnectionStatus.UNKNOWN:
            return self.hinted(provider)
        return state is ConnectionStatus.CONNECTED

    # --- Transitions ---

    def _transition(self, provider: ProviderKey, target: ConnectionStatus) -> None:
        current = self._states[provider]
        if current is target:
            return
        if target not in VALID_TRANSITIONS[current]:
            raise InvalidStateTransition(provider, current, target)
        logger.debug("%s: %s -> %s", provider.value, current.value, target.value)
        self._states[provider] = target

    def _set_connected(self, provider: ProviderKey) -> None:
        self._transition(provider, ConnectionStatus.CONNECTED)
        self._hints.set(provider.hint_key, True)

    def _set_disconnected(self, provider: ProviderKey) -> None:
        self._transition(provider, ConnectionStatus.DISCONNECTED)
        self._hints.remove(provider.hint_key)

    # --- Operations ---

    async def probe(self, provider: ProviderKey) -> ConnectionStatus:
        """Refresh a provider's state from the authorization-status endpoint.

        A failed probe leaves the prior state and hint untouched. A
        provider awaiting its redirect callback is not probed.
        """
        if self._states[provider] in (
            ConnectionStatus.AWAITING_REDIRECT,
            ConnectionStatus.CONNECTING,
        ):
            logger.debug("Skipping probe of %s while %s", provider.value, self._states[provider].value)
            return self._states[provider]
        if not self._client.has_token:
            logger.warning("No token found to check %s status", provider.value)
            return self._states[provider]
        try:
            authorized = await self._client.get_auth_status(provider.value)
        except TaurusClientError as exc:
            logger.error("Failed to check %s auth status: %s", provider.value, exc.message)
            return self._states[provider]

        # The state may have moved while the request was in flight.
        if self._states[provider] in (
            ConnectionStatus.AWAITING_REDIRECT,
            ConnectionStatus.CONNECTING,
        ):
            return self._states[provider]
        if authorized:
            self._set_connected(provider)
        else:
            self._set_disconnected(provider)
        return self._states[provider]

    async def probe_all(self) -> dict[ProviderKey, ConnectionStatus]:
        """Probe every provider concurrently."""
        await asyncio.gather(*(self.probe(key) for key in ProviderKey))
        return self.snapshot()

    async def connect(self, provider: ProviderKey) -> ConnectionStatus:
        """Start authorizing a provider.

        Outcomes:
            - already authorized: CONNECTED
            - authorization URL returned: AWAITING_REDIRECT and the user
              is sent to the URL
            - request failure: DISCONNECTED plus an error notice
            - state changed while the request was in flight: the result
              is dropped and the current state returned
        """
        label = provider.label
        current = self._states[provider]
        if current in (ConnectionStatus.CONNECTING, ConnectionStatus.AWAITING_REDIRECT):
            logger.info("%s connection already in progress", provider.value)
            return current
        if not self._client.has_token:
            self._notices.error("User not authenticated.")
            return current

        self._transition(provider, ConnectionStatus.CONNECTING)
        try:
            result = await self._client.start_auth(provider.value)
        except TaurusClientError as exc:
            logger.error("Error initiating %s auth: %s", provider.value, exc.message)
            if self._states[provider] is not ConnectionStatus.CONNECTING:
                return self._states[provider]
            self._set_disconnected(provider)
            self._notices.error(f"Failed to start {label} authentication")
            return self._states[provider]

        # A disconnect or redirect may have landed while the request was in flight.
        if self._states[provider] is not ConnectionStatus.CONNECTING:
            logger.info(
                "Dropping %s auth result; state is now %s",
                provider.value, self._states[provider].value,
            )
            return self._states[provider]

        if result.success and not result.auth_required:
            self._set_connected(provider)
            self._notices.success(f"Already connected to {label}!")
        elif result.success and result.auth_url:
            self._transition(provider, ConnectionStatus.AWAITING_REDIRECT)
            self.last_auth_url[provider] = result.auth_url
            logger.info("Redirecting to %s authorization", provider.value)
            if self._navigate is not None:
                self._navigate(result.auth_url)
            self._notices.info(f"Complete {label} authorization in your browser.")
        else:
            self._set_disconnected(provider)
            self._notices.error(f"Failed to start {label} authentication")
        return self._states[provider]

    async def disconnect(self, provider: ProviderKey) -> ConnectionStatus:
        """Revoke a provider's authorization.

        The local state becomes DISCONNECTED whatever the backend says;
        a failed revoke only softens the success notice.
        """
        label = provider.label
        if not self._client.has_token:
            self._notices.error("User not authenticated.")
            return self._states[provider]

        error: TaurusClientError | None = None
        try:
            await self._client.disconnect_provider(provider.value)
        except TaurusClientError as exc:
            logger.warning("Backend disconnect of %s failed: %s", provider.value, exc.message)
            error = exc

        self._set_disconnected(provider)
        if error is None:
            self._notices.success(f"Successfully disconnected from {label}")
        elif error.is_network_error:
            self._notices.success(
                f"Disconnected from {label} (network error, please verify manually)."
            )
        else:
            self._notices.success(
                f"Disconnected from {label} (backend issue, please verify manually)."
            )
        return self._states[provider]

    def consume_redirect(self, url: str) -> str:
        """Apply redirect callback parameters carried by ``url``.

        Runs at most once per store: after a callback has been applied,
        later calls only strip parameters. A URL without callback
        parameters is a no-op.

        Args:
            url: The address the client was re-entered at.

        Returns:
            ``url`` with the callback parameters removed, for display.
        """
        params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
        connection = params.get("connection")
        status = params.get("status")
        if not connection:
            return url
        cleaned = strip_redirect_params(url)
        if self._redirect_consumed:
            logger.debug("Redirect parameters already consumed; ignoring replay")
            return cleaned
        self._redirect_consumed = True

        try:
            provider = ProviderKey(connection)
        except ValueError:
            logger.warning("Redirect for unknown provider %r ignored", connection)
            return cleaned

        label = provider.label
        if status == "success":
            self._set_connected(provider)
            self._notices.success(
                f"Successfully connected to {label}! "
                f"You can now use {label} commands in chat."
            )
        elif status == "error":
            self._set_disconnected(provider)
            detail = params.get("message")
            parts = [f"Failed to connect to {label}.", detail, "Please try again."]
            self._notices.error(" ".join(p for p in parts if p))
        else:
            logger.warning("Redirect for %s with unexpected status %r", provider.value, status)
        return cleaned

