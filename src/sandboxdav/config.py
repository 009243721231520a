"""Configuration loading and Pydantic models for SandboxDAV."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    """Server binding and runtime configuration."""

    host: str = "0.0.0.0"
    port: int = 1900
    log_level: str = "INFO"
    log_format: str = "text"
    shutdown_timeout: int = 30


class DavConfig(BaseModel):
    """Protocol behaviour switches.

    Attributes:
        strict_ranges: Answer unsatisfiable Range headers with 416 instead of
            serving the full entity.
        recursive_delete: DELETE on a collection tombstones the whole subtree
            instead of only its immediate children.
        pending_timeout_seconds: Age after which a pending write is considered
            stranded and may be superseded or reaped.
        reap_on_startup: Reap stranded writes when the server starts.
    """

    strict_ranges: bool = False
    recursive_delete: bool = False
    pending_timeout_seconds: int = 3600
    reap_on_startup: bool = True


class MetadataConfig(BaseModel):
    """Metadata store configuration."""

    engine: str = "sqlite"
    sqlite_path: str = "./data/metadata.db"


class StorageConfig(BaseModel):
    """Blob storage backend configuration."""

    backend: str = "local"
    local_root: str = "./data/objects"
    s3_bucket: str = ""
    s3_region: str = "auto"
    s3_prefix: str = ""
    s3_endpoint_url: str = ""
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""


class ObservabilityConfig(BaseModel):
    """Metrics and health check switches."""

    metrics: bool = True
    health_check: bool = True


class SandboxDavConfig(BaseModel):
    """Top-level SandboxDAV configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    dav: DavConfig = Field(default_factory=DavConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {
        "host": data.get("host", "0.0.0.0"),
        "port": data.get("port", 1900),
        "log_level": data.get("log_level", "INFO"),
        "log_format": data.get("log_format", "text"),
        "shutdown_timeout": data.get("shutdown_timeout", 30),
    }


def _parse_dav(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the dav section from YAML data."""
    if data is None:
        return {}
    return {
        "strict_ranges": data.get("strict_ranges", False),
        "recursive_delete": data.get("recursive_delete", False),
        "pending_timeout_seconds": data.get("pending_timeout_seconds", 3600),
        "reap_on_startup": data.get("reap_on_startup", True),
    }


def _parse_metadata(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the metadata section from YAML data.

    Handles nested structure: metadata.sqlite.path -> sqlite_path
    """
    if data is None:
        return {}
    result: dict[str, Any] = {"engine": data.get("engine", "sqlite")}
    sqlite_section = data.get("sqlite")
    if isinstance(sqlite_section, dict):
        result["sqlite_path"] = sqlite_section.get("path", "./data/metadata.db")
    return result


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data.

    Handles nested structure: storage.local.root_dir -> local_root,
    storage.s3.bucket -> s3_bucket, etc.
    """
    if data is None:
        return {}

    result: dict[str, Any] = {"backend": data.get("backend", "local")}

    local_section = data.get("local")
    if isinstance(local_section, dict):
        result["local_root"] = local_section.get("root_dir", "./data/objects")

    s3_section = data.get("s3")
    if isinstance(s3_section, dict):
        result["s3_bucket"] = s3_section.get("bucket", "")
        result["s3_region"] = s3_section.get("region", "auto")
        result["s3_prefix"] = s3_section.get("prefix", "")
        result["s3_endpoint_url"] = s3_section.get("endpoint_url", "")
        result["s3_access_key_id"] = s3_section.get("access_key_id", "")
        result["s3_secret_access_key"] = s3_section.get("secret_access_key", "")

    return result


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the observability section from YAML data."""
    if data is None:
        return {}
    return {
        "metrics": data.get("metrics", True),
        "health_check": data.get("health_check", True),
    }


def load_config(path: Path) -> SandboxDavConfig:
    """Load a SandboxDavConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated SandboxDavConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return SandboxDavConfig(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        dav=DavConfig(**_parse_dav(raw.get("dav"))),
        metadata=MetadataConfig(**_parse_metadata(raw.get("metadata"))),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )
