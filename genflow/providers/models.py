"""Provider Configuration models."""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderConfig(BaseModel):
    """Declarative description of one external model endpoint.

    Providers without ``query_url_template`` are synchronous: the mapped
    submit response is the final result. Asynchronous providers return a
    task reference which is polled through the ``query_*`` templates until
    ``query_success_condition`` or ``query_fail_condition`` holds.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    category: str = "TEXT"
    provider: str
    description: Optional[str] = None
    price_unit: Optional[str] = None
    price_value: Optional[float] = None
    api_key: Optional[str] = Field(default=None, repr=False)
    is_active: bool = True

    url_template: str
    request_method: str = "POST"
    headers_template: Dict[str, Any] = Field(default_factory=dict)
    body_template: Optional[Any] = None
    default_params: Dict[str, Any] = Field(default_factory=dict)
    response_mapping: Dict[str, str] = Field(default_factory=dict)

    query_url_template: Optional[str] = None
    query_method: str = "GET"
    query_headers_template: Optional[Dict[str, Any]] = None
    query_body_template: Optional[Any] = None
    query_response_mapping: Dict[str, str] = Field(default_factory=dict)
    query_success_condition: Optional[str] = None
    query_fail_condition: Optional[str] = None
    query_success_mapping: Optional[Dict[str, str]] = None
    query_fail_mapping: Optional[Dict[str, str]] = None

    custom_handler: Optional[str] = None
    custom_query_handler: Optional[str] = None

    @field_validator(
        "headers_template",
        "body_template",
        "default_params",
        "response_mapping",
        "query_headers_template",
        "query_body_template",
        "query_response_mapping",
        "query_success_mapping",
        "query_fail_mapping",
        mode="before",
    )
    @classmethod
    def _decode_json_text(cls, v: Any) -> Any:
        # Relational rows store these columns as JSON text.
        if isinstance(v, str):
            v = v.strip()
            return json.loads(v) if v else None
        return v

    @field_validator("headers_template", "default_params", "response_mapping", "query_response_mapping", mode="after")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return v if v is not None else {}

    @field_validator("request_method", "query_method")
    @classmethod
    def _upper_method(cls, v: str) -> str:
        return v.upper()

    @field_validator("custom_handler", "custom_query_handler", mode="before")
    @classmethod
    def _blank_handler(cls, v: Any) -> Any:
        return v or None

    @property
    def is_async(self) -> bool:
        return bool(self.query_url_template)

    def resolve_api_key(self) -> Optional[str]:
        """Configured key, else ``<PROVIDER>_API_KEY`` from the environment."""
        if self.api_key:
            return self.api_key
        return os.getenv(f"{self.provider.upper()}_API_KEY")
