# backend/integrations/base/__init__.py
from .adapter import BaseAdapter
from .oauth import (
    PKCEOAuthStrategy,
    StandardOAuthStrategy,
    build_authorization_url,
    code_challenge_s256,
    exchange_code,
    generate_code_verifier,
    oauth_close_window,
)
from .protocols import IntegrationAdapter
from .transport import deduplicate, paginate, process_in_batches

__all__ = [
    "BaseAdapter",
    "PKCEOAuthStrategy",
    "StandardOAuthStrategy",
    "build_authorization_url",
    "code_challenge_s256",
    "exchange_code",
    "generate_code_verifier",
    "oauth_close_window",
    "IntegrationAdapter",
    "deduplicate",
    "paginate",
    "process_in_batches",
]
