from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from .config import Settings
from .errors import Unauthorized
from .services import Services
from .services.auth import AuthenticationService
from .services.shortener import ShortenerService


@dataclass(frozen=True)
class Requester:
    email: str


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_shortener(services: Services = Depends(get_services)) -> ShortenerService:
    return services.shortener


def get_auth(services: Services = Depends(get_services)) -> AuthenticationService:
    return services.auth


async def get_requester(
    authorization: Optional[str] = Header(None),
    auth: AuthenticationService = Depends(get_auth),
) -> Requester:
    if not authorization:
        raise Unauthorized()
    email = await auth.introspect_token(authorization)
    return Requester(email=email)
