# Core integration types and utilities
from .integration_item import NormalizedItem
from .item_types import AuthType, ExportFormat, IntegrationStatus, ItemType, Provider
from .models import (
    Category,
    DateRange,
    ExportOptions,
    ExportResult,
    ImportBatch,
    ImportResult,
    ImportSummary,
    IntegrationCapabilities,
    IntegrationConfig,
    IntegrationSummary,
    OAuthState,
    Page,
    ProviderInfo,
    RateLimits,
    TokenRecord,
)
from .providers import PLANNED_PROVIDERS, PROVIDERS, default_category, get_provider_info
from .registry import AdapterRegistry

__all__ = [
    "NormalizedItem",
    "AuthType",
    "ExportFormat",
    "IntegrationStatus",
    "ItemType",
    "Provider",
    "Category",
    "DateRange",
    "ExportOptions",
    "ExportResult",
    "ImportBatch",
    "ImportResult",
    "ImportSummary",
    "IntegrationCapabilities",
    "IntegrationConfig",
    "IntegrationSummary",
    "OAuthState",
    "Page",
    "ProviderInfo",
    "RateLimits",
    "TokenRecord",
    "PLANNED_PROVIDERS",
    "PROVIDERS",
    "default_category",
    "get_provider_info",
    "AdapterRegistry",
]
