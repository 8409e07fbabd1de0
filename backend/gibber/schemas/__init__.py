# gibber/schemas/__init__.py
"""
Schema module initialization.
Exports the view models rendered to clients.
"""
from .profile import *
from .chat import *
