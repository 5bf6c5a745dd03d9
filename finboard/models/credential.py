from typing import Optional
from sqlmodel import SQLModel


class CredentialInput(SQLModel):
    apiKey: str


class CredentialStatus(SQLModel):
    configured: bool
    source: Optional[str] = None  # "stored" | "environment"
