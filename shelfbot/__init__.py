"""Pick-and-place workflow planning for a shelf-serving dual-arm robot."""

__version__ = "0.1.0"

__all__ = [
    "geometry",
    "node_base",
    "messages",
    "planner",
    "tf_broadcaster",
    "poses_loader",
    "workflow_planner",
    "strategy",
    "actions",
]