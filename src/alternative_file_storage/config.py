"""Credential and endpoint configuration."""

from __future__ import annotations

import os
import ssl
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .constants import DEFAULT_CONNECT_TIMEOUT, DEFAULT_ENDPOINT, DEFAULT_READ_TIMEOUT
from .exceptions import ConfigurationError

PROXY_TYPES = ("http", "socks5", "socks5h", "socks4")

TLS_VERSIONS = {
    "TLSv1": ssl.TLSVersion.TLSv1,
    "TLSv1.1": ssl.TLSVersion.TLSv1_1,
    "TLSv1.2": ssl.TLSVersion.TLSv1_2,
    "TLSv1.3": ssl.TLSVersion.TLSv1_3,
}


@dataclass
class ProxyConfig:
    """Proxy routing for every request."""

    host: str
    user: str | None = None
    password: str | None = field(default=None, repr=False)
    type: str = "socks5"

    def url(self) -> str:
        """Render the proxy as a URL understood by requests."""
        if self.type not in PROXY_TYPES:
            raise ConfigurationError(f"Unsupported proxy type: {self.type}")
        credentials = ""
        if self.user:
            credentials = self.user
            if self.password:
                credentials += f":{self.password}"
            credentials += "@"
        return f"{self.type}://{credentials}{self.host}"


@dataclass
class StorageConfig:
    """Connection settings shared by every operation of a client.

    The configuration is read during request execution; changing it while
    requests are in flight must be synchronized by the caller.
    """

    access_key: str | None = None
    secret_key: str | None = field(default=None, repr=False)
    endpoint: str = DEFAULT_ENDPOINT
    use_ssl: bool = True
    ssl_validation: bool = True
    ssl_cert: str | None = None
    ssl_key: str | None = None
    ssl_ca_cert: str | None = None
    tls_version: str | None = None
    proxy: ProxyConfig | None = None
    time_offset: int = 0
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    default_delimiter: str | None = None
    raise_errors: bool = False
    signing_key_pair_id: str | None = None
    signing_key: RSAPrivateKey | None = field(default=None, repr=False)

    def has_auth(self) -> bool:
        """Check if access and secret keys have been set."""
        return bool(self.access_key) and bool(self.secret_key)

    def require_auth(self) -> None:
        """Fail fast before producing a signature with missing credentials."""
        if not self.has_auth():
            raise ConfigurationError("Access key and secret key must be configured")

    def set_auth(self, access_key: str, secret_key: str) -> None:
        """Replace the credentials."""
        self.access_key = access_key
        self.secret_key = secret_key

    @property
    def scheme(self) -> str:
        return "https" if self.use_ssl else "http"

    @property
    def timeout(self) -> tuple[float, float]:
        return (self.connect_timeout, self.read_timeout)

    def minimum_tls_version(self) -> ssl.TLSVersion | None:
        """Resolve the pinned TLS version, if any."""
        if self.tls_version is None:
            return None
        try:
            return TLS_VERSIONS[self.tls_version]
        except KeyError:
            raise ConfigurationError(f"Unsupported TLS version: {self.tls_version}") from None

    def verify(self) -> bool | str:
        """Value for the requests ``verify`` argument."""
        if not self.ssl_validation:
            return False
        return self.ssl_ca_cert or True

    def client_cert(self) -> str | tuple[str, str] | None:
        """Value for the requests ``cert`` argument."""
        if self.ssl_cert and self.ssl_key:
            return (self.ssl_cert, self.ssl_key)
        return self.ssl_cert

    @classmethod
    def from_env(cls, prefix: str = "S3_") -> StorageConfig:
        """Build a configuration from environment variables.

        Environment Variables:
            S3_ACCESS_KEY, S3_SECRET_KEY: credentials
            S3_ENDPOINT: service host (default: s3.amazonaws.com)
            S3_USE_SSL, S3_SSL_VERIFY: "true"/"false"
            S3_SSL_CERT, S3_SSL_KEY, S3_SSL_CA_CERT: client TLS material
            S3_TLS_VERSION: minimum TLS version (e.g. TLSv1.2)
            S3_PROXY_HOST, S3_PROXY_USER, S3_PROXY_PASSWORD, S3_PROXY_TYPE
            S3_TIME_OFFSET: signing clock correction in seconds
            S3_CONNECT_TIMEOUT, S3_READ_TIMEOUT: seconds
            S3_RAISE_ERRORS: raise instead of returning error outcomes
        """

        def env(name: str, default: str | None = None) -> str | None:
            return os.getenv(f"{prefix}{name}", default)

        def flag(name: str, default: str) -> bool:
            return (env(name, default) or default).lower() == "true"

        proxy = None
        proxy_host = env("PROXY_HOST")
        if proxy_host:
            proxy = ProxyConfig(
                host=proxy_host,
                user=env("PROXY_USER"),
                password=env("PROXY_PASSWORD"),
                type=env("PROXY_TYPE", "socks5") or "socks5",
            )

        return cls(
            access_key=env("ACCESS_KEY"),
            secret_key=env("SECRET_KEY"),
            endpoint=env("ENDPOINT", DEFAULT_ENDPOINT) or DEFAULT_ENDPOINT,
            use_ssl=flag("USE_SSL", "true"),
            ssl_validation=flag("SSL_VERIFY", "true"),
            ssl_cert=env("SSL_CERT"),
            ssl_key=env("SSL_KEY"),
            ssl_ca_cert=env("SSL_CA_CERT"),
            tls_version=env("TLS_VERSION"),
            proxy=proxy,
            time_offset=int(env("TIME_OFFSET", "0") or 0),
            connect_timeout=float(env("CONNECT_TIMEOUT", str(DEFAULT_CONNECT_TIMEOUT)) or DEFAULT_CONNECT_TIMEOUT),
            read_timeout=float(env("READ_TIMEOUT", str(DEFAULT_READ_TIMEOUT)) or DEFAULT_READ_TIMEOUT),
            default_delimiter=env("DEFAULT_DELIMITER"),
            raise_errors=flag("RAISE_ERRORS", "false"),
        )


def load_signing_key(
    config: StorageConfig,
    key_pair_id: str,
    signing_key: str | bytes,
    is_file: bool = True,
) -> None:
    """Attach a CloudFront key pair to the configuration.

    Args:
        config: Configuration to update
        key_pair_id: CloudFront key pair ID
        signing_key: Path to a PEM file, or the PEM contents when ``is_file`` is False
        is_file: Load the private key from a file

    Raises:
        ConfigurationError: If the key cannot be read or is not an RSA key
    """
    try:
        if is_file:
            pem = Path(signing_key).read_bytes()  # type: ignore[arg-type]
        else:
            pem = signing_key.encode("utf-8") if isinstance(signing_key, str) else signing_key
        key: Any = serialization.load_pem_private_key(pem, password=None)
    except (OSError, ValueError, TypeError) as e:
        source = signing_key if is_file else "<inline key>"
        raise ConfigurationError(f"Unable to load private key: {source}") from e

    if not isinstance(key, RSAPrivateKey):
        raise ConfigurationError("CloudFront signing requires an RSA private key")

    config.signing_key_pair_id = key_pair_id
    config.signing_key = key


def free_signing_key(config: StorageConfig) -> None:
    """Drop the signing key reference from the configuration."""
    config.signing_key = None
    config.signing_key_pair_id = None
