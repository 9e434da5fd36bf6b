# src/flowdeck/client/factory.py
"""Build clients from server configuration entries."""

import subprocess

import httpx

from flowdeck.client.http import AirflowClient
from flowdeck.contracts.errors import ClientConstructionError
from flowdeck.core.config import ServerSettings, TokenAuthSettings, expand_env_references


def resolve_token(settings: TokenAuthSettings) -> str:
    """Return the bearer token, running the configured command if needed.

    Raises:
        ClientConstructionError: If the command fails or prints nothing
    """
    if settings.token is not None:
        return expand_env_references(settings.token)

    if settings.cmd is None:
        raise ClientConstructionError("Token auth needs either a token or a command")
    try:
        completed = subprocess.run(
            settings.cmd,
            shell=True,
            capture_output=True,
            text=True,
            check=True,
            timeout=30,
        )
    except subprocess.CalledProcessError as e:
        raise ClientConstructionError(
            f"Token command exited with status {e.returncode}: {e.stderr.strip()}"
        ) from e
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ClientConstructionError(f"Token command failed: {e}") from e

    token = completed.stdout.strip()
    if not token:
        raise ClientConstructionError("Token command printed an empty token")
    return token


def create_client(
    server: ServerSettings,
    timeout: float = 5.0,
    transport: httpx.BaseTransport | None = None,
) -> AirflowClient:
    """Create a client for one configured server.

    Args:
        server: Server configuration entry
        timeout: Per-request timeout in seconds
        transport: Custom httpx transport (tests)

    Returns:
        Client bound to the server's endpoint and credentials

    Raises:
        ClientConstructionError: Bad endpoint, undefined ${VAR}, failing token cmd
    """
    try:
        endpoint = expand_env_references(server.endpoint)
        proxy = expand_env_references(server.proxy) if server.proxy else None

        auth: httpx.Auth | None = None
        headers: dict[str, str] = {}
        if server.auth.basic is not None:
            auth = httpx.BasicAuth(
                expand_env_references(server.auth.basic.username),
                expand_env_references(server.auth.basic.password),
            )
        elif server.auth.token is not None:
            headers["Authorization"] = f"Bearer {resolve_token(server.auth.token)}"
    except ValueError as e:
        raise ClientConstructionError(str(e)) from e

    if not endpoint.startswith(("http://", "https://")):
        raise ClientConstructionError(
            f"Endpoint must start with http:// or https://, got '{endpoint}'"
        )

    try:
        return AirflowClient(
            endpoint,
            server.version,
            auth=auth,
            headers=headers,
            timeout=timeout,
            proxy=proxy,
            verify=server.verify_ssl,
            transport=transport,
        )
    except (httpx.InvalidURL, ValueError) as e:
        raise ClientConstructionError(f"Invalid client configuration: {e}") from e
