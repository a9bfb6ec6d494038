# API Routes Module
from app.api.routes import quota

__all__ = [
    "quota",
]
