"""
API routers package
"""

from prompt_manager.routers.prompts import router as prompts_router
