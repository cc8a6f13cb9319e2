# Stripe webhook sync engine
from .config import SyncConfig, load_config
from .dispatcher import DispatchResult, EventDispatcher, build_dispatcher
from .errors import APIError, AuthenticationFailure, RemoteServiceError
from .response_utils import error_response, success_response
from .store import RecordStore
from .stripe_gateway import StripeGateway
from .verification import construct_event

__all__ = [
    "SyncConfig",
    "load_config",
    "EventDispatcher",
    "DispatchResult",
    "build_dispatcher",
    "RecordStore",
    "StripeGateway",
    "construct_event",
    "APIError",
    "AuthenticationFailure",
    "RemoteServiceError",
    "error_response",
    "success_response",
]
