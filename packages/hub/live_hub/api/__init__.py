from .hub import router

__all__ = ["router"]
