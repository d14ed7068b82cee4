from pathlib import Path

import orjson
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BigIPSettings(BaseModel):
    """Target device settings handed to the reconciler with every snapshot."""

    url: str = Field("", description="Management URL of the BIG-IP device.")
    user: str = Field("", description="Management API username.")
    password: str = Field("", description="Management API password.")
    partitions: list[str] = Field(
        default_factory=list,
        description="Partitions managed by the controller; the first holds all routes.",
    )
    external_addr: str = Field(
        "", description="Externally reachable address of the routing virtual server."
    )
    balance: str = Field(
        "round-robin", description="Load balancing mode applied to every pool."
    )
    verify_interval: int = Field(
        30, description="Seconds between reconciler verification passes."
    )
    health_monitors: list[str] = Field(
        default_factory=list,
        description="Names of existing health monitors attached to every pool.",
    )


class DriverSettings(BaseModel):
    """How to launch the external reconciler process."""

    interpreter: str = Field("python3", description="Interpreter used to run the driver.")
    command: str = Field(
        "python/bigipconfigdriver.py", description="Path of the reconciler script."
    )


class RouteBridgeSettings(BaseSettings):
    """routebridge controller configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTEBRIDGE_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    bigip: BigIPSettings = Field(default_factory=BigIPSettings)
    driver: DriverSettings = Field(default_factory=DriverSettings)
    config_file: Path = Field(
        Path("/tmp/routebridge/bigip-config.json"),
        description="Where snapshots are written for the reconciler to pick up.",
    )
    route_port: int = Field(
        80, description="Port of the routing virtual server and of every service entry."
    )
    virtual_server_name: str = Field(
        "routing-vip-http", description="Name of the routing virtual server."
    )
    policy_name: str = Field(
        "cf-routing-policy", description="Name of the L7 policy holding route rules."
    )
    log_level: str = Field("INFO", description="Log level for the controller.")
    debug_scopes: tuple[str, ...] = Field(
        (), description="Module prefixes that log at DEBUG regardless of log_level."
    )


REQUIRED_BIGIP_FIELDS = ("url", "user", "password", "partitions", "external_addr")


def missing_bigip_fields(bigip: BigIPSettings) -> tuple[str, ...]:
    """Return the names of required device settings that are empty."""
    missing: list[str] = []
    for name in REQUIRED_BIGIP_FIELDS:
        value = getattr(bigip, name)
        if name == "partitions":
            if not [partition for partition in value if partition.strip()]:
                missing.append(name)
        elif not str(value).strip():
            missing.append(name)
    return tuple(missing)


def primary_partition(bigip: BigIPSettings) -> str:
    """The partition that holds every route: the first non-blank one."""
    for partition in bigip.partitions:
        if partition.strip():
            return partition.strip()
    raise ValueError("no partition configured")


def load_settings(path: Path | str | None = None) -> RouteBridgeSettings:
    """Load settings from the environment, overlaid by an optional JSON file."""
    if path is None:
        return RouteBridgeSettings()
    payload = orjson.loads(Path(path).read_bytes())
    if not isinstance(payload, dict):
        raise ValueError(f"settings file {path} must contain a JSON object")
    return RouteBridgeSettings(**payload)
