# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe configuration schemas for ndengine.

Every config section is a frozen pydantic model. Frozen means once you
create it, you cannot mutate it. The engine settings here play the role
of process-level "system properties": environment variables still take
precedence over them (see ndengine.native.resolver).

The models use pydantic v2's ConfigDict with:
  - frozen=True: immutability after construction
  - extra="forbid": unknown fields cause immediate failure
  - validate_default=True: even defaults get type-checked
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PUBLISH_URL = "https://publish.djl.ai"
DEFAULT_API_VERSION = "0.17.0"


class GlobalConfig(BaseModel):
    """
    Cross-cutting settings: logging and reproducibility.

    This is the first section loaded and it controls observability
    (log_level, log_file) and the seed used for block parameter init.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    config_version: str = Field(
        description="Schema version for compatibility tracking, e.g. '1.0.0'"
    )
    project_name: str = Field(
        default="ndengine", description="Human-readable project identifier"
    )
    seed: int = Field(
        default=42,
        ge=0,
        description="Global random seed propagated to python and torch",
    )
    log_level: str = Field(
        default="INFO",
        description="One of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for file-based log output",
    )


class EngineConfig(BaseModel):
    """
    Native engine resolution settings.

    Every override here loses to the matching environment variable
    ({PREFIX}_VERSION, {PREFIX}_FLAVOR, {PREFIX}_PRECXX11,
    {PREFIX}_LIBRARY_PATH, ENGINE_CACHE_DIR).
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    name: str = Field(
        default="pytorch",
        description="Registered engine name, e.g. 'pytorch' or 'onnxruntime'",
    )
    version: Optional[str] = Field(
        default=None,
        description="Engine version override; triggers a download when it differs from the bundle",
    )
    flavor: Optional[str] = Field(
        default=None,
        description="Build flavor override, e.g. 'cpu' or 'cu113'",
    )
    precxx11: bool = Field(
        default=False,
        description="Force the pre-C++11 ABI build of the native library",
    )
    library_path: Optional[str] = Field(
        default=None,
        description="os.pathsep separated directories searched for a prebuilt library",
    )
    cache_dir: Optional[str] = Field(
        default=None,
        description="Root of the native library cache (default ~/.ndengine/cache)",
    )
    bundle_dir: Optional[str] = Field(
        default=None,
        description="Local bundle of native files and properties shipped with the application",
    )
    publish_url: str = Field(
        default=DEFAULT_PUBLISH_URL,
        description="Base URL of the remote artifact repository",
    )
    api_version: str = Field(
        default=DEFAULT_API_VERSION,
        description="Version of the binding API, keys the bridge library in the cache",
    )
    download_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Per-request network timeout; None blocks until the server answers",
    )

    @field_validator("publish_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class NDEngineConfig(BaseModel):
    """
    Top-level config container.

    A YAML file may hold just `global:` or `global:` + `engine:`. A missing
    engine section means every engine setting takes its default.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    global_config: GlobalConfig = Field(alias="global")
    engine: Optional[EngineConfig] = Field(default=None)

    def engine_or_default(self) -> EngineConfig:
        """Return the engine section, or a default one when it was omitted."""
        return self.engine if self.engine is not None else EngineConfig()
