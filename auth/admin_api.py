"""HTTP routes for administrators.

Everything except /login sits behind BearerAuthMiddleware's admin check.
"""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from auth.admin_service import UserAdminService
from auth.api import client_meta, respond
from auth.service import AuthService
from auth.types import LoginRequest, UserUpdateRequest


def create_admin_router(auth_service: AuthService, user_admin: UserAdminService) -> APIRouter:
    """Create admin router with injected services."""
    router = APIRouter(tags=["admin"])

    @router.post("/login")
    def admin_login(request: Request, body: LoginRequest):
        result = auth_service.admin_login(body.email, body.password, **client_meta(request))
        return respond(request, {
            "message": "Admin login successful",
            "token": result.token.token,
            "token_type": result.token.token_type,
            "expires_in": result.token.expires_in,
            "admin": result.admin.model_dump(mode="json"),
            "redirect_to": "/admin/dashboard",
        })

    @router.get("/users")
    def list_users(
        request: Request,
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        search: str | None = Query(None, max_length=100),
    ):
        return respond(request, user_admin.list_users(page=page, limit=limit, search=search))

    @router.put("/users/{user_id}")
    def update_user(user_id: UUID, request: Request, body: UserUpdateRequest):
        user = user_admin.update_user(user_id, body, admin_id=request.state.claims.subject)
        return respond(request, {
            "message": "User updated successfully",
            "user": user.model_dump(mode="json"),
        })

    @router.delete("/users/{user_id}")
    def delete_user(user_id: UUID, request: Request):
        user_admin.delete_user(user_id, admin_id=request.state.claims.subject)
        return respond(request, {"message": "User deleted successfully"})

    return router
