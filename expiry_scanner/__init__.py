"""Product code resolution with AI inference, catalog fallback and manual entry."""

from .client import HttpResolverClient, LocalResolverClient, ResolverClient
from .config import (
    CatalogConfig,
    ClientConfig,
    InferenceConfig,
    InventoryConfig,
    ScannerConfig,
    ServerConfig,
    load_config,
)
from .coordinator import (
    SaveOutcome,
    ScanCoordinator,
    ScanErrorKind,
    ScanOutcome,
    ScanSession,
    ScanStatus,
)
from .errors import (
    CatalogLookupError,
    ConfigError,
    ExpiryScanError,
    InputError,
    ParseError,
    PersistenceError,
    UpstreamError,
)
from .models import (
    AnalysisResult,
    CatalogEntry,
    NewItem,
    Resolution,
    ScanInput,
    StoredItem,
)
from .resolver import ProductResolver, accept, build_resolver, normalize

__all__ = [
    "AnalysisResult",
    "CatalogEntry",
    "NewItem",
    "Resolution",
    "ScanInput",
    "StoredItem",
    "ProductResolver",
    "accept",
    "build_resolver",
    "normalize",
    "ResolverClient",
    "LocalResolverClient",
    "HttpResolverClient",
    "ScanCoordinator",
    "ScanSession",
    "ScanOutcome",
    "SaveOutcome",
    "ScanStatus",
    "ScanErrorKind",
    "ExpiryScanError",
    "InputError",
    "ConfigError",
    "UpstreamError",
    "ParseError",
    "CatalogLookupError",
    "PersistenceError",
    "ScannerConfig",
    "InferenceConfig",
    "CatalogConfig",
    "InventoryConfig",
    "ServerConfig",
    "ClientConfig",
    "load_config",
]
