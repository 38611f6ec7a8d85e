"""Pydantic schemas for User-related requests and responses"""
from pydantic import BaseModel, Field
from typing import Optional


class UserRegisterRequest(BaseModel):
    """
    Optional registration body.

    Attributes:
        business_name: Display name, defaults to the generated business_id
    """

    business_name: Optional[str] = Field(default=None, max_length=255, description="Business name")


class UserRegisterResponse(BaseModel):
    business_id: str
    business_token: str


class GitHubVerifyRequest(BaseModel):
    code: str = Field(..., min_length=1, description="Authorization code from GitHub's OAuth redirect")


class GitHubVerifyResponse(BaseModel):
    github_login: str
    linked_installations: int = 0
