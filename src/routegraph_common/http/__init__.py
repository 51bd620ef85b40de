"""HTTP client with tenacity retry policies.

Retry behaviour comes from named YAML policies bundled under ``policies/``
and validated against ``policy.schema.json``.
"""

from __future__ import annotations

from routegraph_common.http.client import HttpClient, HttpSettings, RequestOptions, StreamResult
from routegraph_common.http.policy import RetryPolicyDoc
from routegraph_common.http.tenacity_retry import TenacityRetryStrategy

__all__ = [
    "HttpClient",
    "HttpSettings",
    "RequestOptions",
    "RetryPolicyDoc",
    "StreamResult",
    "TenacityRetryStrategy",
]
