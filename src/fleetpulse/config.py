"""Pipeline and broker configuration for fleetpulse."""

from __future__ import annotations

import dataclasses
import os
import secrets
from typing import Any

from fleetpulse.exceptions import FleetPulseConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _default_group_id() -> str:
    return f"fleetpulse-{secrets.token_hex(3)}"


@dataclasses.dataclass(frozen=True)
class BrokerCredentials:
    """Authentication settings handed to the broker client.

    At most one of ``use_scram`` / ``use_aws_iam`` may be enabled.  When
    neither is set the connection is unauthenticated (TLS only, if
    enabled).
    """

    use_scram: bool = False
    scram_username: str | None = None
    scram_password: str | None = dataclasses.field(default=None, repr=False)
    use_aws_iam: bool = False
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = dataclasses.field(default=None, repr=False)
    aws_session_token: str | None = dataclasses.field(default=None, repr=False)
    aws_authorization_identity: str | None = None


@dataclasses.dataclass(frozen=True)
class FleetPulseConfig:
    """Pipeline configuration.

    Parameters
    ----------
    topics : tuple of str
        Broker topics to consume.  Topics whose name contains
        ``fault_topic_marker`` are routed through the fault pipeline.
    group_id : str
        Consumer group id.  Defaults to a random ``fleetpulse-xxxxxx``.
    client_id : str
        Broker client id.
    brokers : tuple of str
        Bootstrap servers.
    ssl : bool
        Enable TLS towards the broker.
    reject_unauthorized : bool
        Verify broker certificates when TLS is enabled.
    credentials : BrokerCredentials
        SASL settings.
    history_capacity : int
        Ring-buffer size of each asset's fault history.
    fault_topic_marker : str
        Case-insensitive substring that marks a fault topic.
    partition_fallback : bool
        Allow fault messages without identity to inherit the id last seen
        on their partition.
    singleton_fallback : bool
        Allow fault messages without identity to attach to the only asset
        in the store.
    id_header_names : tuple of str
        Transport headers consulted for an asset id, in order.
    vin_header_names : tuple of str
        Transport headers consulted for a VIN, in order.
    """

    topics: tuple[str, ...] = ()
    group_id: str = dataclasses.field(default_factory=_default_group_id)
    client_id: str = "fleetpulse"
    brokers: tuple[str, ...] = ()
    ssl: bool = True
    reject_unauthorized: bool = True
    credentials: BrokerCredentials = dataclasses.field(default_factory=BrokerCredentials)
    history_capacity: int = 600
    fault_topic_marker: str = "fault"
    partition_fallback: bool = True
    singleton_fallback: bool = True
    id_header_names: tuple[str, ...] = ("id", "vehicleId", "assetId")
    vin_header_names: tuple[str, ...] = ("vin", "VIN")

    def is_fault_topic(self, topic: str) -> bool:
        return self.fault_topic_marker.lower() in topic.lower()

    def validate(self) -> None:
        """Raise :class:`FleetPulseConfigError` for unusable settings."""
        if not self.topics:
            raise FleetPulseConfigError("No topics provided. Set TOPICS=topic1,topic2")
        if self.history_capacity <= 0:
            raise FleetPulseConfigError("history_capacity must be positive")

        creds = self.credentials
        if creds.use_scram and creds.use_aws_iam:
            raise FleetPulseConfigError("Set only one of USE_SCRAM or USE_AWS_IAM to true, not both.")
        if creds.use_scram and (not creds.scram_username or not creds.scram_password):
            raise FleetPulseConfigError("SCRAM enabled but SCRAM_USERNAME / SCRAM_PASSWORD not set.")
        if creds.use_aws_iam and not self.ssl:
            raise FleetPulseConfigError("USE_AWS_IAM requires SSL/TLS. Set SSL=true.")

    def broker_settings(self) -> dict[str, Any]:
        """Build the settings dict for the broker client collaborator."""
        self.validate()
        settings: dict[str, Any] = {
            "client_id": self.client_id,
            "group_id": self.group_id,
            "brokers": list(self.brokers),
            "topics": list(self.topics),
            "ssl": {"reject_unauthorized": self.reject_unauthorized} if self.ssl else None,
        }

        creds = self.credentials
        if creds.use_scram:
            settings["sasl"] = {
                "mechanism": "scram-sha-512",
                "username": creds.scram_username,
                "password": creds.scram_password,
            }
        elif creds.use_aws_iam:
            sasl: dict[str, Any] = {"mechanism": "aws"}
            if creds.aws_authorization_identity:
                sasl["authorization_identity"] = creds.aws_authorization_identity
            # Without explicit keys the client falls back to the ambient role.
            if creds.aws_access_key_id and creds.aws_secret_access_key:
                sasl["access_key_id"] = creds.aws_access_key_id
                sasl["secret_access_key"] = creds.aws_secret_access_key
                if creds.aws_session_token:
                    sasl["session_token"] = creds.aws_session_token
            settings["sasl"] = sasl
        return settings

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetPulseConfig:
        """Create configuration from environment variables.

        Reads ``TOPICS``, ``KAFKA_GROUP_ID`` (or ``GROUP_ID``),
        ``KAFKA_CLIENT_ID``, ``BOOTSTRAP_SERVERS``, ``SSL``,
        ``REJECT_UNAUTHORIZED``, the SCRAM / AWS IAM variables and the
        ``FLEETPULSE_*`` tunables.  Explicit keyword arguments override
        environment values.  The result is validated before returning.

        Raises
        ------
        FleetPulseConfigError
            If the resulting configuration is unusable.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        topics = _env_list(env.get("TOPICS"))
        if topics:
            config_kwargs["topics"] = topics
        brokers = _env_list(env.get("BOOTSTRAP_SERVERS"))
        if brokers:
            config_kwargs["brokers"] = brokers

        group_id = env.get("KAFKA_GROUP_ID") or env.get("GROUP_ID")
        if group_id:
            config_kwargs["group_id"] = group_id
        client_id = env.get("KAFKA_CLIENT_ID")
        if client_id:
            config_kwargs["client_id"] = client_id

        config_kwargs["ssl"] = _env_bool(env.get("SSL"), True)
        config_kwargs["reject_unauthorized"] = _env_bool(env.get("REJECT_UNAUTHORIZED"), True)

        credential_overrides = overrides.pop("credentials", None)
        if isinstance(credential_overrides, BrokerCredentials):
            credentials = credential_overrides
        else:
            credentials = BrokerCredentials(
                use_scram=_env_bool(env.get("USE_SCRAM"), False),
                scram_username=env.get("SCRAM_USERNAME"),
                scram_password=env.get("SCRAM_PASSWORD"),
                use_aws_iam=_env_bool(env.get("USE_AWS_IAM"), False),
                aws_access_key_id=env.get("AWS_ACCESS_KEY_ID"),
                aws_secret_access_key=env.get("AWS_SECRET_ACCESS_KEY"),
                aws_session_token=env.get("AWS_SESSION_TOKEN"),
                aws_authorization_identity=env.get("AWS_AUTHORIZATION_IDENTITY"),
            )
            if isinstance(credential_overrides, dict):
                credentials = dataclasses.replace(credentials, **credential_overrides)
        config_kwargs["credentials"] = credentials

        capacity_env = env.get("FLEETPULSE_HISTORY_CAPACITY")
        if capacity_env is not None:
            try:
                config_kwargs["history_capacity"] = int(capacity_env)
            except ValueError as exc:
                raise FleetPulseConfigError(
                    f"FLEETPULSE_HISTORY_CAPACITY must be an integer, got {capacity_env!r}"
                ) from exc

        marker = env.get("FLEETPULSE_FAULT_TOPIC_MARKER")
        if marker:
            config_kwargs["fault_topic_marker"] = marker
        config_kwargs["partition_fallback"] = _env_bool(env.get("FLEETPULSE_PARTITION_FALLBACK"), True)
        config_kwargs["singleton_fallback"] = _env_bool(env.get("FLEETPULSE_SINGLETON_FALLBACK"), True)

        config_kwargs.update(overrides)

        config = cls(**config_kwargs)
        config.validate()
        return config
