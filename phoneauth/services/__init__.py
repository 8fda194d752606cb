# phoneauth Services
from phoneauth.services.delivery import DeliveryDispatcher, get_delivery_dispatcher
from phoneauth.services.otp import OtpEngine, OtpPolicy
from phoneauth.services.principal import PrincipalService
from phoneauth.services.results import AuthFailure, OtpVerification, TokenCheck
from phoneauth.services.store_sweeper import StoreSweeper
from phoneauth.services.token import TokenEngine

__all__ = [
    "AuthFailure",
    "DeliveryDispatcher",
    "OtpEngine",
    "OtpPolicy",
    "OtpVerification",
    "PrincipalService",
    "StoreSweeper",
    "TokenCheck",
    "TokenEngine",
    "get_delivery_dispatcher",
]
