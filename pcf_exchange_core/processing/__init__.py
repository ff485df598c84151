"""Footprint mapping, filtering and tree operations."""

from .filter_parser import FetchFilter, FilterOperation, JoinedOperation, parse_filter
from .footprint_mapper import map_child, map_product_footprint
from .footprint_tree import (
    BreakdownIssue,
    check_breakdown,
    clone_child,
    clone_footprint,
    effective_child,
    merge_child,
    walk,
)

__all__ = [
    "BreakdownIssue",
    "FetchFilter",
    "FilterOperation",
    "JoinedOperation",
    "check_breakdown",
    "clone_child",
    "clone_footprint",
    "effective_child",
    "map_child",
    "map_product_footprint",
    "merge_child",
    "parse_filter",
    "walk",
]
