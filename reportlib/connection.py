"""
Connection provider for Microsoft Graph.

Builds an app-only Graph client from a tenant id, client id and client
secret, verifies the credential up front, and hands back a Session the
pipeline owns until disconnect.
"""
import asyncio
import base64
import inspect
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from azure.identity import ClientSecretCredential
from msgraph.graph_service_client import GraphServiceClient

from .constants import (
    ENV_CLIENT_SECRET,
    GRAPH_SCOPE,
    SERVICE_GRAPH,
    SERVICE_SHAREPOINT,
    SHAREPOINT_ADMIN_URL_PATTERN,
)
from .errors import AuthError, describe_cause
from .prompts import PromptUnavailable

logger = logging.getLogger(__name__)

SUPPORTED_SERVICES = (SERVICE_GRAPH, SERVICE_SHAREPOINT)


@dataclass
class ConnectionSettings:
    """Credentials and tenant endpoints resolved from CLI, config and env."""
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    admin_url: Optional[str] = None


@dataclass
class Session:
    """
    An authenticated session against one service.

    The Graph SDK request builders return coroutines; ``call`` drives them on
    a private event loop so the rest of the pipeline stays sequential.
    """
    service: str
    scopes: FrozenSet[str]
    tenant_id: str
    client: Any
    credential: Any = None
    endpoint: Optional[str] = None  # SharePoint admin URL for the sharepoint service
    closed: bool = False
    _loop: Optional[asyncio.AbstractEventLoop] = field(default=None, repr=False)

    @property
    def tenant_host(self) -> Optional[str]:
        """Tenant SharePoint host derived from the admin URL (contoso.sharepoint.com)."""
        if not self.endpoint:
            return None
        match = re.match(SHAREPOINT_ADMIN_URL_PATTERN, self.endpoint)
        return f"{match.group(1).lower()}.sharepoint.com" if match else None

    def call(self, result: Any) -> Any:
        """Resolve an SDK result: awaitables run to completion, plain values pass through."""
        if not inspect.isawaitable(result):
            return result
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
        return self._loop.run_until_complete(result)

    def close(self) -> None:
        """Release the HTTP transport, credential and event loop. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        try:
            try:
                self._close_transport()
            finally:
                if self.credential is not None and hasattr(self.credential, 'close'):
                    self.credential.close()
        finally:
            if self._loop is not None:
                self._loop.close()
                self._loop = None

    def _close_transport(self) -> None:
        # The SDK's request adapter owns an httpx.AsyncClient bound to our loop
        if self._loop is None:
            return
        adapter = getattr(self.client, 'request_adapter', None)
        aclose = getattr(getattr(adapter, '_http_client', None), 'aclose', None)
        if aclose is None:
            return
        result = aclose()
        if inspect.isawaitable(result):
            self._loop.run_until_complete(result)


def validate_admin_url(value: Optional[str]) -> bool:
    return bool(value) and re.match(SHAREPOINT_ADMIN_URL_PATTERN, value.strip()) is not None  # type: ignore[union-attr]


def prompt_admin_url(prompter, current: Optional[str] = None) -> str:
    """
    Return a syntactically valid SharePoint admin URL.

    Keeps asking until the answer matches the admin URL pattern.
    """
    value = current.strip() if current else None
    while not validate_admin_url(value):
        if value:
            print(f"'{value}' is not a SharePoint admin URL (expected https://<tenant>-admin.sharepoint.com)")
        value = prompter.ask(
            'admin_url',
            "SharePoint admin URL (https://<tenant>-admin.sharepoint.com)"
        )
    return value.rstrip('/')  # type: ignore[union-attr]


def token_roles(access_token: str) -> Optional[FrozenSet[str]]:
    """
    Application roles granted in an access token, or None if they can't be read.

    The token is only decoded, not verified; the service validates it.
    """
    if not isinstance(access_token, str):
        return None
    try:
        payload = access_token.split('.')[1]
        payload += '=' * (-len(payload) % 4)
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (IndexError, ValueError):
        return None
    if not isinstance(claims, dict):
        return None
    roles = claims.get('roles')
    if not isinstance(roles, list):
        return None
    return frozenset(str(role) for role in roles)


def normalize_requirements(scopes: Iterable[Any]) -> Tuple[Tuple[str, ...], ...]:
    """
    Turn required scopes into a tuple of requirements.

    A requirement is a sequence of acceptable permissions; a bare string is a
    requirement with a single acceptable permission.
    """
    requirements = ((scope,) if isinstance(scope, str) else tuple(scope) for scope in scopes)
    return tuple(requirement for requirement in requirements if requirement)


def describe_requirement(requirement: Sequence[str]) -> str:
    """'GroupMember.Read.All (or Group.Read.All, Directory.Read.All)'"""
    preferred, *alternatives = requirement
    if not alternatives:
        return preferred
    return f"{preferred} (or {', '.join(alternatives)})"


def missing_requirements(requirements: Iterable[Sequence[str]], granted: FrozenSet[str]) -> List[Sequence[str]]:
    """Requirements none of whose acceptable permissions were granted."""
    return [requirement for requirement in requirements if not granted.intersection(requirement)]


def _mask(value: str) -> str:
    if len(value) <= 12:
        return value
    return f"{value[:8]}...{value[-4:]}"


class GraphConnector:
    """
    Connection provider for the Graph-backed services.

    Args:
        settings: Resolved credentials and endpoints
        prompter: Used to ask for a missing or malformed SharePoint admin URL
        credential_factory: Builds the token credential (defaults to ClientSecretCredential)
        client_factory: Builds the Graph client (defaults to GraphServiceClient)
    """

    def __init__(
        self,
        settings: ConnectionSettings,
        prompter=None,
        credential_factory: Optional[Callable[..., Any]] = None,
        client_factory: Optional[Callable[..., Any]] = None,
    ):
        self.settings = settings
        self.prompter = prompter
        self.credential_factory = credential_factory or ClientSecretCredential
        self.client_factory = client_factory or (
            lambda credential: GraphServiceClient(credentials=credential, scopes=[GRAPH_SCOPE])
        )

    def connect(self, service: str, scopes: Iterable[Any]) -> Session:
        """
        Establish an authenticated session. Raises AuthError on any failure.

        Each entry of ``scopes`` is one requirement: a permission name, or a
        sequence of permissions any one of which satisfies it.
        """
        requirements = normalize_requirements(scopes)
        if service not in SUPPORTED_SERVICES:
            raise AuthError(service, f"unsupported service (expected one of {', '.join(SUPPORTED_SERVICES)})")

        settings = self.settings
        if not settings.tenant_id or not settings.client_id or not settings.client_secret:
            raise AuthError(
                service,
                f"missing credentials (need tenant id, client id and {ENV_CLIENT_SECRET})"
            )

        endpoint = None
        if service == SERVICE_SHAREPOINT:
            endpoint = self._resolve_admin_url(service)

        logger.info(f"Connecting to {service} for tenant {_mask(settings.tenant_id)}...")
        credential = None
        try:
            credential = self.credential_factory(
                tenant_id=settings.tenant_id,
                client_id=settings.client_id,
                client_secret=settings.client_secret,
            )
            token = credential.get_token(GRAPH_SCOPE)
            granted = token_roles(getattr(token, 'token', ''))
            if granted is not None:
                missing = missing_requirements(requirements, granted)
                if missing:
                    raise AuthError(
                        service,
                        f"missing application permissions: {'; '.join(describe_requirement(r) for r in missing)}"
                    )
            else:
                logger.debug("Token carries no readable roles claim; skipping permission check")
            client = self.client_factory(credential)
        except AuthError:
            self._close_quietly(credential)
            raise
        except Exception as e:
            self._close_quietly(credential)
            raise AuthError(service, describe_cause(e)) from e

        logger.info(f"Connected to {service}")
        return Session(
            service=service,
            scopes=granted if granted is not None else frozenset(r[0] for r in requirements),
            tenant_id=settings.tenant_id,
            client=client,
            credential=credential,
            endpoint=endpoint,
        )

    def disconnect(self, session: Optional[Session]) -> None:
        """Close a session. Idempotent; failures are logged, never raised."""
        if session is None or session.closed:
            return
        try:
            session.close()
            logger.info(f"Disconnected from {session.service}")
        except Exception as e:
            logger.warning(f"Failed to disconnect from {session.service}: {e}")

    def _resolve_admin_url(self, service: str) -> str:
        current = self.settings.admin_url
        if validate_admin_url(current):
            return current.strip().rstrip('/')  # type: ignore[union-attr]
        if self.prompter is None:
            raise AuthError(service, "SharePoint admin URL not configured")
        try:
            value = prompt_admin_url(self.prompter, current)
        except PromptUnavailable as e:
            raise AuthError(service, f"SharePoint admin URL not supplied ({e})") from e
        self.settings.admin_url = value
        return value

    @staticmethod
    def _close_quietly(credential: Any) -> None:
        if credential is None or not hasattr(credential, 'close'):
            return
        try:
            credential.close()
        except Exception as e:
            logger.debug(f"Failed to close credential: {e}")
