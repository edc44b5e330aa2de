"""
Engine settings domain model.

Paths, service names, external tool locations and timeouts used by the engine.
Every field has a default matching a stock cluster install; a JSON file passed
with ``--config`` can override any of them.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ManagedPaths(BaseModel):
    """Host-absolute locations of the managed configuration files."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    ldap_conf: str = Field("/etc/openldap/ldap.conf", description="OpenLDAP client config")
    nslcd_conf: str = Field("/etc/nslcd.conf", description="nslcd lookup daemon config")
    slapd_conf: str = Field(
        "/cm/local/apps/openldap/etc/slapd.conf",
        description="Directory server config on control-plane nodes",
    )
    sssd_conf: str = Field("/etc/sssd/sssd.conf", description="SSSD identity broker config")

    @field_validator("ldap_conf", "nslcd_conf", "slapd_conf", "sssd_conf")
    @classmethod
    def validate_absolute(cls, v: str) -> str:
        """Managed paths are re-rooted into images, so they must be absolute."""
        if not v.startswith("/"):
            raise ValueError(f"Managed path must be absolute: {v}")
        return v


class ValidationSettings(BaseModel):
    """Parameters for the functional validate mode."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    lookup_user: str = Field("cmsupport", description="Existing directory user looked up on every node")
    test_user: str = Field("bind-test-user", description="Temporary user created for the bind test")
    test_password: str = Field("testpass", description="Password of the temporary user")
    base_dn: str = Field("dc=cm,dc=cluster", description="Directory base DN")
    ldap_uri: str = Field("ldaps://ldapserver:636", description="URI used for the bind test")
    sync_delay: float = Field(2.0, ge=0, description="Seconds to wait for the new user to replicate")


class EngineSettings(BaseModel):
    """
    Domain model for engine settings.

    Immutable once loaded; threaded into every component through RunConfig.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    paths: ManagedPaths = Field(default_factory=ManagedPaths)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)

    images_prefix: str = Field("/cm/images", description="Directory holding staged image trees")
    slapd_binary: str = Field(
        "/cm/local/apps/openldap/sbin/slapd",
        description="slapd binary probed for SASL2 support",
    )
    cmsh_candidates: List[str] = Field(
        default_factory=lambda: [
            "/cm/local/apps/cmd/bin/cmsh",
            "/usr/bin/cmsh",
            "/usr/local/bin/cmsh",
        ],
        description="Locations searched for the cluster management shell",
    )
    control_plane_token: str = Field("HeadNode", description="Device type of control-plane nodes")

    lookup_service: str = Field("nslcd", description="Lookup daemon unit name")
    directory_service: str = Field("slapd", description="Directory server unit name")
    broker_service: str = Field("sssd", description="Identity broker unit name")

    ssh_options: List[str] = Field(
        default_factory=lambda: ["-o", "BatchMode=yes", "-o", "ConnectTimeout=10"],
        description="Extra options passed to ssh for remote targets",
    )
    command_timeout: int = Field(60, ge=1, description="Seconds before a single command is abandoned")
    image_update_timeout: int = Field(1800, ge=1, description="Seconds allowed for pushing images to nodes")

    lock_path: str = Field("/var/lock/ldapbind.lock", description="Lock held during write and rollback")
    lock_timeout: float = Field(10.0, ge=0, description="Seconds to wait for the run lock")
    hostname: Optional[str] = Field(None, description="Override for this host's short name")
