# Routes package __init__.py - re-exports routers for main.py convenience
from .words import router as words_router
from .review import router as review_router
from .backups import router as backups_router
from .quiz import router as quiz_router
from .sync import router as sync_router

__all__ = ['words_router', 'review_router', 'backups_router', 'quiz_router', 'sync_router']
