"""Code transformers invoked by the code transform stage."""

from esdev.transform.base import CodeTransformer, ModuleResolution, PassthroughTransformer
from esdev.transform.resolver import NodeResolveTransformer, default_transformer

__all__ = [
    "CodeTransformer",
    "ModuleResolution",
    "PassthroughTransformer",
    "NodeResolveTransformer",
    "default_transformer",
]
