"""Request pipeline stages.

Each stage is an async ``(request, call_next) -> Response`` callable;
the static file stage is terminal and takes only the request.
"""

from esdev.stages.base import CallNext, Handler, Stage
from esdev.stages.channel import ReloadChannelStage
from esdev.stages.etag import etag_stage
from esdev.stages.fallback import HistoryFallbackStage
from esdev.stages.html import HtmlTransformStage
from esdev.stages.static import StaticFileStage
from esdev.stages.transform import CodeTransformStage
from esdev.stages.watch import WatchStage

__all__ = [
    "CallNext",
    "Handler",
    "Stage",
    "etag_stage",
    "ReloadChannelStage",
    "WatchStage",
    "CodeTransformStage",
    "HtmlTransformStage",
    "HistoryFallbackStage",
    "StaticFileStage",
]
