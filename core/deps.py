"""
Define functions/aliases for dependency injection
"""
from collections.abc import Generator
from typing import Annotated, TypeAlias
from sqlmodel import Session
from fastapi import Depends
import boto3

from core.config import get_settings
from core.db import get_engine
from api.storage.factory import ResourceFactory

# Define db dependency
def get_db() -> Generator[Session, None, None]:
  with Session(get_engine()) as session:
    yield session

def get_s3_client():
  settings = get_settings()
  return boto3.client("s3", region_name=settings.AWS_REGION)

SessionDep: TypeAlias = Annotated[Session, Depends(get_db)]

def get_resource_factory(
  session: SessionDep,
  s3_client=Depends(get_s3_client),
) -> ResourceFactory:
  return ResourceFactory(session, get_settings(), s3_client=s3_client)

ResourceFactoryDep: TypeAlias = Annotated[ResourceFactory, Depends(get_resource_factory)]
