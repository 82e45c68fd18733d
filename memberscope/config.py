"""
memberscope Configuration Module
================================

Centralized configuration management for memberscope.
Supports environment variables for sensitive data (LDAP credentials).

Design Decision:
- Configuration is a dataclass tree that can be passed through the pipeline
- Lookup-error policy is configured here, not hard-coded in the resolver
- Output paths are configurable for flexibility in different environments
"""

import json
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

from .errors import ConfigurationError


LOOKUP_ERROR_POLICIES = ("skip", "abort")


@dataclass
class LDAPConfig:
    """Configuration for the live LDAP directory client.

    Attributes:
        server: Domain controller IP address or hostname
        domain: Domain name (e.g., "corp.local")
        username: Bind username (user, DOMAIN\\user or user@domain)
        password: Bind password (loaded from environment if not provided)
        ntlm_hash: NTLM hash for Pass-the-Hash binds
        use_ssl: Whether to use LDAPS (port 636) vs LDAP (port 389)
        timeout: Connection timeout in seconds
    """
    server: Optional[str] = None
    domain: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    ntlm_hash: Optional[str] = None
    use_ssl: bool = False
    port: Optional[int] = None  # Auto-detect based on use_ssl
    timeout: int = 30

    def __post_init__(self):
        """Load credentials from environment and derive the port."""
        if self.password is None:
            self.password = os.environ.get("MEMBERSCOPE_LDAP_PASSWORD")
        if self.ntlm_hash is None:
            self.ntlm_hash = os.environ.get("MEMBERSCOPE_LDAP_NTLM_HASH")

        if self.port is None:
            self.port = 636 if self.use_ssl else 389

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and (self.password or self.ntlm_hash))


@dataclass
class ResolverConfig:
    """Configuration for group membership resolution.

    Attributes:
        on_lookup_error: "skip" logs and records members whose lookup fails,
            "abort" propagates the failure and stops the resolution
        max_depth: Deepest nesting level to expand (None for unlimited).
            Direct members of the root are at depth 1.
        owner_separator: Separator used to join a device's owner UPNs
    """
    on_lookup_error: str = "skip"
    max_depth: Optional[int] = None
    owner_separator: str = ", "

    def __post_init__(self):
        if self.on_lookup_error not in LOOKUP_ERROR_POLICIES:
            raise ConfigurationError(
                f"on_lookup_error must be one of {LOOKUP_ERROR_POLICIES}, got {self.on_lookup_error!r}"
            )
        if self.max_depth is not None and self.max_depth < 1:
            raise ConfigurationError(f"max_depth must be at least 1, got {self.max_depth}")


@dataclass
class OutputConfig:
    """Configuration for output and reporting.

    Attributes:
        output_dir: Directory for exported files
        export_csv: Whether to write the flat CSV member list
        export_json: Whether to write the JSON report
        export_html: Whether to write the interactive membership graph
        file_prefix: Prefix for exported file names
    """
    output_dir: str = "output"
    export_csv: bool = False
    export_json: bool = False
    export_html: bool = False
    file_prefix: str = "group_members"

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir)


@dataclass
class MemberscopeConfig:
    """Main configuration container for memberscope.

    Usage:
        config = MemberscopeConfig()  # Uses all defaults
        config = MemberscopeConfig(resolver=ResolverConfig(on_lookup_error="abort"))
    """
    ldap: LDAPConfig = field(default_factory=LDAPConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    # Verbosity level for logging
    verbose: bool = False
    debug: bool = False

    @classmethod
    def from_dict(cls, config_dict: dict) -> "MemberscopeConfig":
        """Create configuration from a dictionary.

        Useful for loading from JSON files or CLI inputs.
        """
        try:
            ldap_config = LDAPConfig(**config_dict.get("ldap", {}))
            resolver_config = ResolverConfig(**config_dict.get("resolver", {}))
            output_config = OutputConfig(**config_dict.get("output", {}))
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        return cls(
            ldap=ldap_config,
            resolver=resolver_config,
            output=output_config,
            verbose=config_dict.get("verbose", False),
            debug=config_dict.get("debug", False)
        )

    @classmethod
    def from_file(cls, path: str) -> "MemberscopeConfig":
        """Load configuration from a JSON file."""
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Config file {path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a JSON object")

        return cls.from_dict(data)

    def to_dict(self) -> dict:
        """Convert configuration to dictionary for serialization.

        Secrets are masked so the result is safe to write into reports.
        """
        data = asdict(self)
        for secret in ("password", "ntlm_hash"):
            if data["ldap"].get(secret):
                data["ldap"][secret] = "***"
        return data


# Default global configuration instance
_default_config: Optional[MemberscopeConfig] = None


def get_config() -> MemberscopeConfig:
    """Get the global configuration instance."""
    global _default_config
    if _default_config is None:
        _default_config = MemberscopeConfig()
    return _default_config


def set_config(config: MemberscopeConfig) -> None:
    """Set the global configuration instance."""
    global _default_config
    _default_config = config
