"""Document collections persisted by the loyalty core."""

from .business import Business  # noqa: F401
from .customer_card import CustomerCard  # noqa: F401
from .loyalty_card import LoyaltyCard, StampShape  # noqa: F401
from .reward import Reward  # noqa: F401
from .stamp import Stamp, StampActivity  # noqa: F401
from .user import User, UserTypeEnum  # noqa: F401
