from .errors import LayoutError, DimensionMismatch, NotFound, NotReady, TaskDiscarded
from .config import LayoutOptions, load_options, POLL_INTERVAL_MS
from .feature import Feature, mean_feature
from .graph import Graph, Node, Edge, KNearest, SpanningTree
from .node_positioner import NodePositioner, LayoutResult, ANCHOR
from .tasks import LayoutTaskRunner, LayoutKind, TaskHandle
from .classes import Classifier, FeatureClass
from .browser import ClusterBrowser

__version__ = "0.1.0"

__all__ = [
    'LayoutError',
    'DimensionMismatch',
    'NotFound',
    'NotReady',
    'TaskDiscarded',
    'LayoutOptions',
    'load_options',
    'POLL_INTERVAL_MS',
    'Feature',
    'mean_feature',
    'Graph',
    'Node',
    'Edge',
    'KNearest',
    'SpanningTree',
    'NodePositioner',
    'LayoutResult',
    'ANCHOR',
    'LayoutTaskRunner',
    'LayoutKind',
    'TaskHandle',
    'Classifier',
    'FeatureClass',
    'ClusterBrowser',
]
