"""Agent pool orchestration for tracker work items."""

__version__ = "0.1.0"
