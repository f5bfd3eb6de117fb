from foreman.approval.detector import ActionDetector, Category, DetectedAction, Severity
from foreman.approval.gate import ApprovalGate, PendingApproval

__all__ = [
    "ActionDetector",
    "ApprovalGate",
    "Category",
    "DetectedAction",
    "PendingApproval",
    "Severity",
]
