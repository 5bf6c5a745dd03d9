from fastapi import APIRouter, Depends

from finboard.api import deps
from finboard.models import CredentialInput, CredentialStatus
from finboard.services.credential_service import CredentialService

router = APIRouter()


def status_of(credentials: CredentialService) -> CredentialStatus:
    source = credentials.source()
    return CredentialStatus(configured=source is not None, source=source)


@router.get("", response_model=CredentialStatus)
async def get_credential_status(
    credentials: CredentialService = Depends(deps.get_credentials),
):
    # Never echo the key itself
    return status_of(credentials)


@router.put("", response_model=CredentialStatus)
async def set_credential(
    body: CredentialInput,
    credentials: CredentialService = Depends(deps.get_credentials),
):
    credentials.set(body.apiKey)
    return status_of(credentials)


@router.delete("", response_model=CredentialStatus)
async def clear_credential(
    credentials: CredentialService = Depends(deps.get_credentials),
):
    credentials.clear()
    return status_of(credentials)
