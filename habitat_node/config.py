"""Node configuration drawn from defaults, the habitat.yml file and the environment."""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re
import ssl
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding

logger = logging.getLogger(__name__)

ENVIRONMENT_DEV = "dev"
ENVIRONMENT_PROD = "prod"

ROOT_USERNAME = "root"
ROOT_USER_ID = "0"
NODE_DB_DEFAULT_NAME = "node"

CONTEXT_KEY_USER_ID = "user_id"

APP_DRIVER_DOCKER = "docker"
APP_DRIVER_WEB = "web"

DEFAULT_PORT_HABITAT_API = "3000"
DEFAULT_PORT_REVERSE_PROXY = "3001"
PORT_REVERSE_PROXY_TS_FUNNEL = "443"

TSNET_HOSTNAME_DEFAULT = "habitat"
TSNET_HOSTNAME_DEV = "habitat-dev"

_CONFIG_FILES = ("habitat.yml", "habitat.yaml")

_ENV_BINDINGS = {
    "environment": "ENVIRONMENT",
    "debug": "DEBUG",
    "habitat_path": "HABITAT_PATH",
    "habitat_app_path": "HABITAT_APP_PATH",
    "use_tls": "USE_TLS",
    "tailscale_authkey": "TS_AUTHKEY",
    "tailnet": "TS_TAILNET",
    "tailscale_funnel_enabled": "TS_FUNNEL_ENABLED",
    "domain": "DOMAIN",
    "frontend_dev": "FRONTEND_DEV",
}

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})

_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([^\r\n-]+)-----\r?\n(.*?)-----END \1-----", re.DOTALL
)


class ConfigError(Exception):
    """Raised when the node configuration cannot be loaded."""


def _lower_keys(data: Mapping[Any, Any]) -> dict[str, Any]:
    return {str(key).lower(): value for key, value in data.items()}


def _read_yaml(text: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise ConfigError(f"invalid config: {err}") from err
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError("config must be a mapping of settings")
    return _lower_keys(data)


def _find_config_file(directories: list[str]) -> Path:
    for directory in directories:
        for name in _CONFIG_FILES:
            candidate = Path(directory) / name
            if candidate.is_file():
                return candidate
    raise ConfigError(f'Config File "habitat" Not Found in {directories}')


def load_settings(
    environ: Mapping[str, str] | None = None, home: str | os.PathLike[str] | None = None
) -> dict[str, Any]:
    """Merge defaults, the habitat.yml file and environment variables, in rising priority."""
    environ = os.environ if environ is None else environ
    home = str(Path.home()) if home is None else os.fspath(home)

    defaults: dict[str, Any] = {
        "environment": ENVIRONMENT_PROD,
        "debug": False,
        "habitat_path": os.path.join(home, ".habitat"),
        "use_tls": False,
        "frontend_dev": False,
    }
    env = {key: environ[var] for key, var in _ENV_BINDINGS.items() if environ.get(var)}

    habitat_path = env.get("habitat_path", defaults["habitat_path"])
    config_file = _find_config_file([os.path.join(home, ".habitat"), habitat_path])
    file_settings = _read_yaml(config_file.read_text(encoding="utf-8"))
    return {**defaults, **file_settings, **env}


def decode_pem_cert(cert_path: str | os.PathLike[str]) -> x509.Certificate:
    """Read the first PEM block of a file and parse it as an X.509 certificate."""
    data = Path(cert_path).read_bytes()
    match = _PEM_BLOCK.search(data)
    if match is None:
        raise ConfigError("got nil block after decoding PEM")
    if match.group(1) != b"CERTIFICATE":
        raise ConfigError("expected CERTIFICATE PEM block")
    try:
        der = base64.b64decode(b"".join(match.group(2).split()), validate=True)
    except binascii.Error as err:
        raise ConfigError("got nil block after decoding PEM") from err
    try:
        return x509.load_der_x509_certificate(der)
    except ValueError as err:
        raise ConfigError(f"invalid certificate: {err}") from err


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value in _TRUE_WORDS
    return False


class NodeConfig:
    """Settings of a Habitat node, with the certificates it was started with."""

    def __init__(
        self,
        settings: Mapping[str, Any] | None = None,
        root_user_cert: x509.Certificate | None = None,
        node_cert: x509.Certificate | None = None,
        root_user_cert_raw: bytes | None = None,
    ) -> None:
        self._settings = _lower_keys(settings or {})
        self.root_user_cert = root_user_cert
        self.node_cert = node_cert
        self.root_user_cert_raw = root_user_cert_raw

    def _str(self, key: str) -> str:
        return _as_str(self._settings.get(key))

    def _bool(self, key: str) -> bool:
        return _as_bool(self._settings.get(key))

    @property
    def environment(self) -> str:
        return self._str("environment")

    @property
    def log_level(self) -> int:
        return logging.DEBUG if self._bool("debug") else logging.INFO

    @property
    def habitat_path(self) -> str:
        return self._str("habitat_path")

    @property
    def habitat_app_path(self) -> str:
        # In dev mode this points at the host machine rather than the container.
        return self._str("habitat_app_path") or os.path.join(self.habitat_path, "apps")

    @property
    def hdb_path(self) -> str:
        return os.path.join(self.habitat_path, "hdb")

    @property
    def web_bundle_path(self) -> str:
        """Directory where application web bundles are stored."""
        return os.path.join(self.habitat_path, "web")

    @property
    def node_cert_path(self) -> str:
        if not self.habitat_path:
            return ""
        return os.path.join(self.habitat_path, "certificates", "dev_node_cert.pem")

    @property
    def node_key_path(self) -> str:
        if not self.habitat_path:
            return ""
        return os.path.join(self.habitat_path, "certificates", "dev_node_key.pem")

    @property
    def root_user_cert_path(self) -> str:
        return os.path.join(self.habitat_path, "certificates", "dev_root_user_cert.pem")

    @property
    def root_user_cert_b64(self) -> str:
        raw = self.root_user_cert_raw
        if raw is None and self.root_user_cert is not None:
            raw = self.root_user_cert.public_bytes(Encoding.DER)
        if raw is None:
            raise ConfigError("no root user certificate loaded")
        return base64.b64encode(raw).decode("ascii")

    @property
    def use_tls(self) -> bool:
        return self._bool("use_tls")

    def tls_context(self) -> ssl.SSLContext | None:
        """A server context requiring client certificates signed by the root user cert."""
        if not self.use_tls:
            return None
        root_pem = Path(self.root_user_cert_path).read_text(encoding="utf-8")
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        try:
            context.load_verify_locations(cadata=root_pem)
        except ssl.SSLError:
            logger.warning("no usable certificates in %s", self.root_user_cert_path)
        context.verify_mode = ssl.CERT_REQUIRED
        return context

    @property
    def hostname(self) -> str:
        """Hostname the node listens on."""
        if self.tailscale_authkey:
            if self.environment == ENVIRONMENT_DEV:
                return TSNET_HOSTNAME_DEV
            return TSNET_HOSTNAME_DEFAULT
        return "localhost"

    @property
    def domain(self) -> str:
        """Domain hosting the node when Tailscale funnel is enabled."""
        return self._str("domain") if self.tailscale_funnel_enabled else ""

    @property
    def reverse_proxy_port(self) -> str:
        if self.tailscale_funnel_enabled:
            return PORT_REVERSE_PROXY_TS_FUNNEL
        return DEFAULT_PORT_REVERSE_PROXY

    @property
    def tailnet_name(self) -> str:
        return self._str("tailnet")

    @property
    def tailscale_authkey(self) -> str:
        return self._str("tailscale_authkey")

    @property
    def tailscale_state_path(self) -> str:
        return os.path.join(self.habitat_path, "tailscale_state")

    @property
    def tailscale_funnel_enabled(self) -> bool:
        if not self.tailscale_authkey:
            return False
        return self._bool("tailscale_funnel_enabled")

    @property
    def pds_admin_username(self) -> str:
        return "admin"

    @property
    def pds_admin_password(self) -> str:
        return "password"

    @property
    def frontend_dev(self) -> bool:
        return self._bool("frontend_dev")

    def default_apps(self) -> list[dict[str, Any]] | None:
        """App install requests listed under default_apps, or None if malformed."""
        section = self._settings.get("default_apps")
        if section is None:
            return []
        if not isinstance(section, Mapping):
            logger.error("Failed to unmarshal default apps: expected a mapping")
            return None
        requests = []
        for name, request in section.items():
            if not isinstance(request, Mapping):
                logger.error("Failed to unmarshal default apps: entry %s is not a mapping", name)
                return None
            requests.append(dict(request))
        return requests


def node_config_from_yaml(text: str) -> NodeConfig:
    """Build a config from YAML text alone, without defaults or environment."""
    return NodeConfig(_read_yaml(text))


def load_node_config(
    environ: Mapping[str, str] | None = None, home: str | os.PathLike[str] | None = None
) -> NodeConfig:
    """Load settings and the root user and node certificates from disk."""
    config = NodeConfig(load_settings(environ, home))

    root_cert_path = config.root_user_cert_path
    if root_cert_path:
        config.root_user_cert = decode_pem_cert(root_cert_path)
        config.root_user_cert_raw = config.root_user_cert.public_bytes(Encoding.DER)

    if config.node_cert_path:
        config.node_cert = decode_pem_cert(config.node_cert_path)

    logger.debug(
        "Loaded node config: node cert: %s root cert: %s node key: %s",
        config.node_cert_path,
        config.root_user_cert_path,
        config.node_key_path,
    )
    return config


def new_test_node_config(settings: Mapping[str, Any] | None = None) -> NodeConfig:
    """A config for tests, carrying a fake root user certificate."""
    return NodeConfig(settings or {}, root_user_cert_raw=b"root_cert")