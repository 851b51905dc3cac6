from .file import FileCollection, SigaaFile
from .updatable import ResourceCollection, ResourceIdentityCache, UpdatableResource

__all__ = ["FileCollection", "ResourceCollection", "ResourceIdentityCache", "SigaaFile", "UpdatableResource"]
