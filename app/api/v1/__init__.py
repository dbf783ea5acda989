from . import skin_analysis

__all__ = ["skin_analysis"]
