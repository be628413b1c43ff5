"""
Runtime configuration for the advertisement checker service.

This module centralizes environment-driven configuration: which generative
model provider is used and how it is reached, the upload boundary limits,
the external checklist catalog, and the local scene store.

Configuration is constructed once per process and is immutable thereafter.
It is passed explicitly into the components that need it; no component
reads the environment on its own.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Tuple

from pydantic import BaseModel, Field, SecretStr, field_validator, ValidationInfo


DEFAULT_IMAGE_TYPES: Tuple[str, ...] = (
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
)


class CheckerConfig(BaseModel):
    """
    Runtime configuration for the advertisement checker.

    Configuration is environment-driven and read-only at runtime.
    """

    # ------------------------------------------------------------------
    # Generative model provider
    # ------------------------------------------------------------------

    MODEL_PROVIDER: str = Field(
        "disabled",
        description="Generative model provider identifier",
    )

    MODEL_NAME: str = Field(
        "gemini-2.5-pro",
        description="Model name used for judgments (Gemini provider)",
    )

    GEMINI_API_KEY: SecretStr = Field(
        SecretStr(""),
        description="API key for the Gemini provider",
    )

    AZURE_OPENAI_ENDPOINT: str = Field(
        "",
        description="Azure OpenAI endpoint URL",
    )

    AZURE_OPENAI_DEPLOYMENT: str = Field(
        "",
        description="Azure OpenAI deployment name",
    )

    AZURE_OPENAI_API_VERSION: str = Field(
        "",
        description="Azure OpenAI API version",
    )

    LLM_TIMEOUT_SECONDS: float = Field(
        60.0,
        gt=0,
        description="Upper bound on a single generative call",
    )

    # ------------------------------------------------------------------
    # Upload boundary
    # ------------------------------------------------------------------

    MAX_UPLOAD_SIZE_MB: int = Field(
        20,
        gt=0,
        description="Maximum allowed upload size in megabytes",
    )

    MAX_PAGE_COUNT: int = Field(
        200,
        gt=0,
        description="Maximum allowed number of pages in an uploaded PDF",
    )

    ACCEPTED_IMAGE_TYPES: Tuple[str, ...] = Field(
        DEFAULT_IMAGE_TYPES,
        description="Raster image MIME types accepted in addition to PDF",
    )

    # ------------------------------------------------------------------
    # Checklist / scene catalog
    # ------------------------------------------------------------------

    CATALOG_URL: str = Field(
        "",
        description="Spreadsheet-backed catalog endpoint (empty = disabled)",
    )

    CATALOG_TIMEOUT_SECONDS: float = Field(
        15.0,
        gt=0,
        description="Timeout for a single catalog request",
    )

    # ------------------------------------------------------------------
    # Local configuration and workflow
    # ------------------------------------------------------------------

    SCENE_STORE_PATH: Path = Field(
        Path("scenes.json"),
        description="JSON key-value store holding user-defined scenes",
    )

    WORKFLOW_PROFILE: str = Field(
        "pdf_checklist",
        description="Default workflow track for new sessions",
    )

    MAX_SESSIONS: int = Field(
        100,
        gt=0,
        description="Sessions kept in the in-process registry before the "
        "least recently used idle ones are evicted",
    )

    SESSION_IDLE_TTL_SECONDS: float = Field(
        3600.0,
        gt=0,
        description="Idle time after which a session is evicted",
    )

    LOG_LEVEL: str = Field(
        "INFO",
        description="Root logging level",
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator("MODEL_PROVIDER")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        allowed = {"disabled", "azure_openai", "gemini"}
        if v not in allowed:
            raise ValueError(
                f"Unsupported MODEL_PROVIDER '{v}'. "
                f"Allowed values: {sorted(allowed)}"
            )
        return v

    @field_validator("GEMINI_API_KEY")
    @classmethod
    def gemini_requires_key(
        cls, v: SecretStr, info: ValidationInfo
    ) -> SecretStr:
        if info.data.get("MODEL_PROVIDER") == "gemini" and not v.get_secret_value():
            raise ValueError(
                "MODEL_PROVIDER is 'gemini' but GEMINI_API_KEY is not configured."
            )
        return v

    @field_validator("AZURE_OPENAI_DEPLOYMENT")
    @classmethod
    def azure_requires_endpoint_and_deployment(
        cls, v: str, info: ValidationInfo
    ) -> str:
        if info.data.get("MODEL_PROVIDER") == "azure_openai":
            if not info.data.get("AZURE_OPENAI_ENDPOINT"):
                raise ValueError(
                    "MODEL_PROVIDER is 'azure_openai' but "
                    "AZURE_OPENAI_ENDPOINT is not configured."
                )
            if not v:
                raise ValueError(
                    "MODEL_PROVIDER is 'azure_openai' but "
                    "AZURE_OPENAI_DEPLOYMENT is not configured."
                )
        return v

    @field_validator("AZURE_OPENAI_API_VERSION")
    @classmethod
    def azure_requires_api_version(cls, v: str, info: ValidationInfo) -> str:
        if info.data.get("MODEL_PROVIDER") == "azure_openai" and not v:
            raise ValueError(
                "MODEL_PROVIDER is 'azure_openai' but "
                "AZURE_OPENAI_API_VERSION is not configured."
            )
        return v

    @field_validator("ACCEPTED_IMAGE_TYPES")
    @classmethod
    def image_types_are_images(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        for mime_type in v:
            if not mime_type.startswith("image/"):
                raise ValueError(
                    f"ACCEPTED_IMAGE_TYPES entry is not an image type: {mime_type}"
                )
        return v

    @field_validator("WORKFLOW_PROFILE")
    @classmethod
    def validate_profile(cls, v: str) -> str:
        allowed = {"pdf_checklist", "scene", "scene_single"}
        if v not in allowed:
            raise ValueError(
                f"Unsupported WORKFLOW_PROFILE '{v}'. "
                f"Allowed values: {sorted(allowed)}"
            )
        return v

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "CheckerConfig":
        """
        Load configuration from environment variables.

        All values are parsed once at startup and must remain immutable.
        """
        image_types_env = os.getenv("ADCHECKER_ACCEPTED_IMAGE_TYPES")

        return cls(
            MODEL_PROVIDER=os.getenv("ADCHECKER_MODEL_PROVIDER", "disabled"),
            MODEL_NAME=os.getenv("ADCHECKER_MODEL_NAME", "gemini-2.5-pro"),
            GEMINI_API_KEY=SecretStr(os.getenv("GEMINI_API_KEY", "")),
            AZURE_OPENAI_ENDPOINT=os.getenv("AZURE_OPENAI_ENDPOINT", ""),
            AZURE_OPENAI_DEPLOYMENT=os.getenv("AZURE_OPENAI_DEPLOYMENT", ""),
            AZURE_OPENAI_API_VERSION=os.getenv("AZURE_OPENAI_API_VERSION", ""),
            LLM_TIMEOUT_SECONDS=float(
                os.getenv("ADCHECKER_LLM_TIMEOUT_SECONDS", "60")
            ),
            MAX_UPLOAD_SIZE_MB=int(
                os.getenv("ADCHECKER_MAX_UPLOAD_SIZE_MB", "20")
            ),
            MAX_PAGE_COUNT=int(
                os.getenv("ADCHECKER_MAX_PAGE_COUNT", "200")
            ),
            ACCEPTED_IMAGE_TYPES=(
                tuple(t.strip() for t in image_types_env.split(",") if t.strip())
                if image_types_env
                else DEFAULT_IMAGE_TYPES
            ),
            CATALOG_URL=os.getenv("ADCHECKER_CATALOG_URL", ""),
            CATALOG_TIMEOUT_SECONDS=float(
                os.getenv("ADCHECKER_CATALOG_TIMEOUT_SECONDS", "15")
            ),
            SCENE_STORE_PATH=Path(
                os.getenv("ADCHECKER_SCENE_STORE_PATH", "scenes.json")
            ),
            WORKFLOW_PROFILE=os.getenv(
                "ADCHECKER_WORKFLOW_PROFILE", "pdf_checklist"
            ),
            MAX_SESSIONS=int(os.getenv("ADCHECKER_MAX_SESSIONS", "100")),
            SESSION_IDLE_TTL_SECONDS=float(
                os.getenv("ADCHECKER_SESSION_IDLE_TTL_SECONDS", "3600")
            ),
            LOG_LEVEL=os.getenv("ADCHECKER_LOG_LEVEL", "INFO"),
        )

    model_config = {
        "frozen": True,
        "validate_default": True,
    }
