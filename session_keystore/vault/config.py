"""
Keystore Configuration — KDF cost parameters and validated settings.

Reads settings from environment variables:
    KEYSTORE_DIR = <base directory for wallet and session records>
    KEYSTORE_SCRYPT_N = <power of two, default 262144>
    KEYSTORE_SCRYPT_R = <block size, default 8>
    KEYSTORE_SCRYPT_P = <parallelism, default 1>
    KEYSTORE_MIN_PASSWORD_LENGTH = <integer, never below 8>

Security Note:
    Never log passwords or key material. Only log paths and parameters.
"""
import os
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger("keystore.vault")

DEFAULT_SCRYPT_N = 2 ** 18
DEFAULT_SCRYPT_R = 8
DEFAULT_SCRYPT_P = 1
KEY_LENGTH = 32  # AES-256
# largest scrypt block buffer (128 * N * r bytes) accepted from disk or env
MAX_SCRYPT_MEMORY = 2 ** 32
MIN_PASSWORD_LENGTH = 8

DEFAULT_NETWORKS = ("arbitrum-one", "arbitrum-sepolia")
DEFAULT_PROVIDERS = ("alchemy", "zerodev")


def default_base_dir() -> Path:
    """Return the per-user keystore directory (``~/.session-keystore``)."""
    return Path.home() / ".session-keystore"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from err


class ScryptParams(BaseModel):
    """scrypt cost parameters, stored alongside every envelope."""

    n: int = Field(default=DEFAULT_SCRYPT_N)
    r: int = Field(default=DEFAULT_SCRYPT_R, ge=1)
    p: int = Field(default=DEFAULT_SCRYPT_P, ge=1)
    dk_len: int = Field(default=KEY_LENGTH)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    @field_validator("n")
    @classmethod
    def validate_cost(cls, v: int) -> int:
        """scrypt requires N to be a power of two greater than 1."""
        if v < 2 or v & (v - 1):
            raise ValueError(f"scrypt N must be a power of two > 1, got {v}")
        return v

    @field_validator("dk_len")
    @classmethod
    def validate_dk_len(cls, v: int) -> int:
        if v != KEY_LENGTH:
            raise ValueError(f"dkLen must be {KEY_LENGTH}, got {v}")
        return v

    @model_validator(mode="after")
    def validate_bounds(self) -> "ScryptParams":
        """Reject costs the KDF cannot run: r * p < 2**30 and a capped buffer."""
        if self.r * self.p >= 2 ** 30:
            raise ValueError(
                f"scrypt r * p must be below 2**30, got r={self.r} p={self.p}"
            )
        if 128 * self.n * self.r > MAX_SCRYPT_MEMORY:
            raise ValueError(
                f"scrypt memory 128 * N * r exceeds {MAX_SCRYPT_MEMORY} bytes "
                f"(N={self.n}, r={self.r})"
            )
        return self

    @classmethod
    def from_env(cls) -> "ScryptParams":
        return cls(
            n=_env_int("KEYSTORE_SCRYPT_N", DEFAULT_SCRYPT_N),
            r=_env_int("KEYSTORE_SCRYPT_R", DEFAULT_SCRYPT_R),
            p=_env_int("KEYSTORE_SCRYPT_P", DEFAULT_SCRYPT_P),
        )


class KeystoreConfig(BaseModel):
    """Validated keystore configuration."""

    base_dir: Path
    scrypt: ScryptParams = Field(default_factory=ScryptParams)
    min_password_length: int = Field(default=MIN_PASSWORD_LENGTH, ge=MIN_PASSWORD_LENGTH)
    networks: tuple[str, ...] = DEFAULT_NETWORKS
    providers: tuple[str, ...] = DEFAULT_PROVIDERS

    model_config = {"frozen": True}

    @field_validator("base_dir")
    @classmethod
    def expand_base_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @classmethod
    def from_env(cls) -> "KeystoreConfig":
        """Create KeystoreConfig by loading values from environment.

        Returns:
            Populated KeystoreConfig instance.
        """
        raw_dir = os.environ.get("KEYSTORE_DIR")
        base_dir = Path(raw_dir) if raw_dir else default_base_dir()
        config = cls(
            base_dir=base_dir,
            scrypt=ScryptParams.from_env(),
            min_password_length=_env_int(
                "KEYSTORE_MIN_PASSWORD_LENGTH", MIN_PASSWORD_LENGTH
            ),
        )
        logger.debug(
            "Keystore config loaded: dir=%s scrypt_n=%d",
            config.base_dir, config.scrypt.n,
        )
        return config
