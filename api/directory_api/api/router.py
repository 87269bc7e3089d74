from fastapi import APIRouter

from directory_api.api.routes import auth, directory, health, submissions, users

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(submissions.router, prefix="/submissions", tags=["submissions"])
api_router.include_router(directory.router, prefix="/directory", tags=["public"])
