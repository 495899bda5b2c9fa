from .backend import GenerationBackend
from .proxy_backend import ProxyGenerationBackend
from .replicate_backend import ReplicateGenerationBackend

__all__ = ["GenerationBackend", "ProxyGenerationBackend", "ReplicateGenerationBackend"]
