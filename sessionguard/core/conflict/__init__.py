from sessionguard.core.conflict.engine import Admission, ConflictPolicyEngine, PendingConflict, ResolveAction

__all__ = ["Admission", "ConflictPolicyEngine", "PendingConflict", "ResolveAction"]
