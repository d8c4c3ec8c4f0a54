# Copyright 2024, William Bradley, All rights reserved.
import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8125
DEFAULT_BATCH_SIZE = 10

# METRICSD_<FIELD>: overrides the matching ClientConfig field, e.g. METRICSD_PORT=9125.
ENV_PREFIX = "METRICSD_"


class ClientConfig(BaseModel):
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    namespace: Optional[str] = None
    postfix: Optional[str] = None
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        if environ is None:
            environ = os.environ
        values = {}
        for field in ("host", "port", "namespace", "postfix", "batch_size"):
            if value := environ.get(f"{ENV_PREFIX}{field.upper()}"):
                values[field] = value
        return cls.model_validate(values)
