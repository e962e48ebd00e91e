"""
Models package for the Collections Follow-up Service.
"""
from .authorization import AuthorizationRequest, RequestPriority, RequestStatus
from .catalog import DebtState, ManagementType, TransitionRule
from .debt import Debt, FollowUp, User

__all__ = [
    "AuthorizationRequest",
    "RequestPriority",
    "RequestStatus",
    "DebtState",
    "ManagementType",
    "TransitionRule",
    "Debt",
    "FollowUp",
    "User",
]
