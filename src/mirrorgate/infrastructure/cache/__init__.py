from .instance_cache import InstanceCache

__all__ = ["InstanceCache"]
