"""Factory for the backend client and the engine built around it.

CLI commands never construct HttpClient or ChatEngine directly; they
go through here so configuration is applied in one place.
"""

from collections.abc import Callable

from src.cli.config import TaurusConfig
from src.engine.engine import ChatEngine
from src.engine.hints import HintStore


def get_client(
    config: TaurusConfig | None = None,
    base_url: str | None = None,
    token: str | None = None,
):
    """Create the HttpClient for the configured backend.

    Args:
        config: Loaded config. Defaults apply when None.
        base_url: Overrides config.backend.base_url.
        token: Overrides config.auth.token.

    Returns:
        An HttpClient (not yet opened).
    """
    from src.cli.http_client import HttpClient

    config = config or TaurusConfig()
    return HttpClient(
        base_url=base_url or config.backend.base_url,
        token=config.auth.token if token is None else token,
        timeout=config.backend.timeout_seconds,
    )


def get_engine(
    config: TaurusConfig | None = None,
    navigate: Callable[[str], object] | None = None,
    client=None,
) -> ChatEngine:
    """Create a ChatEngine wired to the configured client and hint file.

    Args:
        config: Loaded config. Defaults apply when None.
        navigate: Opens external authorization URLs.
        client: Pre-built TaurusClient; built from config when None.
    """
    config = config or TaurusConfig()
    return ChatEngine(
        client or get_client(config),
        hints=HintStore(config.storage.resolved_hints_path()),
        user_id=config.auth.user_id,
        max_attempts=config.polling.max_attempts,
        interval_ms=config.polling.interval_ms,
        navigate=navigate,
    )
