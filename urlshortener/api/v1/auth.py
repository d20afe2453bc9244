from fastapi import APIRouter, Depends

from ...dependencies import Requester, get_auth, get_requester
from ...schemas import AuthRequest, AuthResponse, MeResponse
from ...services.auth import AuthenticationService

router = APIRouter()


@router.post("/auth/callback", response_model=AuthResponse)
async def auth_callback(
    body: AuthRequest,
    auth: AuthenticationService = Depends(get_auth),
):
    grant = await auth.exchange_token(body.authorization_code)
    return AuthResponse(access_token=grant.access_token, token_type=grant.token_type)


@router.get("/me", response_model=MeResponse)
async def me(requester: Requester = Depends(get_requester)):
    return MeResponse(email=requester.email)
