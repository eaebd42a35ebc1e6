"""Export services."""

from .geojson import route_plan_to_feature_collection

__all__ = ["route_plan_to_feature_collection"]
