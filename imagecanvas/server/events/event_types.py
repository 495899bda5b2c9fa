"""
Workspace event shapes broadcast to the UI.
All events are plain dicts so they can be emitted over Socket.IO as-is.
"""
from typing import Any, Dict, List, Literal, Optional, TypedDict, Union


class GraphChangedEvent(TypedDict):
    type: Literal["GRAPH_CHANGED"]
    changes: List[Dict[str, Any]]
    ts: int


class TransformCommittedEvent(TypedDict):
    type: Literal["TRANSFORM_COMMITTED"]
    transform: Dict[str, float]
    ts: int


class SelectionChangedEvent(TypedDict):
    type: Literal["SELECTION_CHANGED"]
    activeImageId: Optional[str]
    editorId: Optional[str]
    tool: str
    ts: int


class HistoryChangedEvent(TypedDict):
    type: Literal["HISTORY_CHANGED"]
    historyIndex: int
    length: int
    canGoBack: bool
    canGoForward: bool
    ts: int


WorkspaceEvent = Union[
    GraphChangedEvent,
    TransformCommittedEvent,
    SelectionChangedEvent,
    HistoryChangedEvent,
]
