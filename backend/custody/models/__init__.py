from custody.models.refresh_token import RefreshToken
from custody.models.transfer_request import TransferRequest, TransferStatus
from custody.models.user import User
from custody.models.wallet import Wallet

__all__ = [
    "RefreshToken",
    "TransferRequest",
    "TransferStatus",
    "User",
    "Wallet",
]
