from .checkout import CheckoutClient, CheckoutError
from .download_flow import DownloadFlow
from .storage import LocalOrderStorage
from .verification import PaymentVerificationTask, VerificationState

__all__ = [
    "CheckoutClient",
    "CheckoutError",
    "DownloadFlow",
    "LocalOrderStorage",
    "PaymentVerificationTask",
    "VerificationState",
]
