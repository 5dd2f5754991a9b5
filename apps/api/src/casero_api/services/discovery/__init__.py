"""Customer discovery feed."""

from casero_api.services.refresh_flags import RefreshFlags, RefreshTarget  # noqa: F401

from .cache import CustomerCardsCache, CustomerCardsSnapshot  # noqa: F401
from .service import DiscoveryService  # noqa: F401
