from foreman.context.resolver import ContextAction, ContextResolver, RepoContext

__all__ = ["ContextAction", "ContextResolver", "RepoContext"]
